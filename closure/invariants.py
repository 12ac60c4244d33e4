"""
CLOSURE INVARIANTS - Recompute-and-compare verification of the closure.

The materialized closure must equal, witness for witness, what a fresh
traversal of the link table produces:

1. Self Closure: every node has exactly its (n, n, 0) entry
2. Path Witnesses: (a, d, k) is stored iff some real path a -> d has k edges
3. Root Marker Exclusivity: a node has a root marker XOR a real parent

The expected closure is built with rustworkx. This is a verification tool
for tests and operations, not part of any mutation path.
"""
import rustworkx as rx
from typing import Dict, Iterable, List, Set, Tuple

import msgspec

from closure.closure_store import ClosureStore
from closure.link_store import LinkStore
from closure.schemas import Link


Triple = Tuple[str, str, int]


class ClosureReport(msgspec.Struct, kw_only=True):
    """Result of comparing stored closure with recomputed closure."""
    scope: str
    valid: bool
    missing: List[Triple] = msgspec.field(default_factory=list)
    spurious: List[Triple] = msgspec.field(default_factory=list)
    missing_self: List[str] = msgspec.field(default_factory=list)
    root_marker_violations: List[str] = msgspec.field(default_factory=list)
    metrics: Dict[str, int] = msgspec.field(default_factory=dict)


def build_graph(links: Iterable[Link], node_ids: Iterable[str] = ()) -> Tuple[rx.PyDiGraph, Dict[str, int]]:
    """
    Build a PyDiGraph from real links.

    Returns:
        (graph, id -> rustworkx index). Node payloads are the node ids.
    """
    graph = rx.PyDiGraph(multigraph=False)
    index: Dict[str, int] = {}

    def _idx(node_id: str) -> int:
        if node_id not in index:
            index[node_id] = graph.add_node(node_id)
        return index[node_id]

    for node_id in node_ids:
        _idx(node_id)
    for link in links:
        child = _idx(link.child_id)
        if link.parent_id is not None:
            graph.add_edge(_idx(link.parent_id), child, None)
    return graph, index


class ClosureInvariants:
    """Validators comparing the stores against a rustworkx recomputation."""

    @staticmethod
    def expected_closure(graph: rx.PyDiGraph) -> Set[Triple]:
        """
        Every (ancestor, descendant, path length) realizable in the graph,
        plus one self entry per node.
        """
        expected: Set[Triple] = set()
        for idx in graph.node_indices():
            node_id = graph[idx]
            expected.add((node_id, node_id, 0))
            for target in rx.descendants(graph, idx):
                for path in rx.all_simple_paths(graph, idx, target):
                    expected.add((node_id, graph[target], len(path) - 1))
        return expected

    @staticmethod
    def verify(links: LinkStore, closure: ClosureStore, scope: str, node_ids: Iterable[str] = ()) -> ClosureReport:
        """
        Compare the stored closure of a scope with the recomputed one.

        Args:
            links: Link store to read edges from
            closure: Closure store to check
            scope: Scope to verify
            node_ids: Known nodes of the scope (isolated nodes have no links)
        """
        all_links = links.all_links(scope)
        stored_entries = closure.all_entries(scope)
        stored = {entry.as_triple() for entry in stored_entries}

        # A node that lost every link is still known through its self entry.
        node_ids = list(node_ids) + [
            entry.ancestor_id for entry in stored_entries
            if entry.ancestor_id == entry.descendant_id
        ]
        graph, index = build_graph(all_links, node_ids)
        expected = ClosureInvariants.expected_closure(graph)

        missing_self = sorted(n for n in index if (n, n, 0) not in stored)

        marker_ids = {link.child_id for link in all_links if link.parent_id is None}
        with_parent = {link.child_id for link in all_links if link.parent_id is not None}
        marker_violations = sorted(
            n for n in index if (n in marker_ids) == (n in with_parent)
        )

        missing = sorted(expected - stored)
        spurious = sorted(stored - expected)
        return ClosureReport(
            scope=scope,
            valid=not (missing or spurious or missing_self or marker_violations),
            missing=missing,
            spurious=spurious,
            missing_self=missing_self,
            root_marker_violations=marker_violations,
            metrics={
                "nodes": graph.num_nodes(),
                "edges": graph.num_edges(),
                "links": len(all_links),
                "closure_entries": len(stored_entries),
                "expected_entries": len(expected),
            },
        )
