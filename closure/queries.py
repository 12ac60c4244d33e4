"""
CLOSURE QUERIES - Read views over the link and closure stores.

Nothing here traverses the graph: every answer is a single scan of one
store. Results are concrete, ordered lists. When several paths of
different lengths connect two nodes, the node appears once per length;
use `unique_ids` to collapse them.

    A
   / \\
  B   C       ancestors(D) -> [A (2), B (1), C (1)]
   \\ /        descendants(A) -> [B (1), C (1), D (2)]
    D
"""
from typing import List

from closure.closure_store import ClosureStore
from closure.errors import NodeNotFoundError
from closure.link_store import LinkStore
from closure.node_store import NodeStore
from closure.schemas import ClosureEntry, Relative


class QueryFacade:
    """Structural questions answered from the materialized stores."""

    def __init__(self, nodes: NodeStore, links: LinkStore, closure: ClosureStore):
        self.nodes = nodes
        self.links = links
        self.closure = closure

    def _scope(self, node_id: str) -> str:
        if not self.nodes.exists(node_id):
            raise NodeNotFoundError(node_id)
        return self.nodes.scope_of(node_id)

    # =========================================================================
    # ONE HOP
    # =========================================================================

    def parents(self, node_id: str) -> List[str]:
        return self.links.parent_ids(self._scope(node_id), node_id)

    def children(self, node_id: str) -> List[str]:
        return self.links.child_ids(self._scope(node_id), node_id)

    # =========================================================================
    # CLOSURE VIEWS
    # =========================================================================

    def ancestors(self, node_id: str) -> List[Relative]:
        """Ancestors excluding self, farthest first."""
        entries = self.closure.ancestors_of(self._scope(node_id), node_id)
        return [Relative(node_id=e.ancestor_id, distance=e.distance) for e in entries]

    def descendants(self, node_id: str) -> List[Relative]:
        """Descendants excluding self, nearest first."""
        entries = self.closure.descendants_of(self._scope(node_id), node_id)
        return [Relative(node_id=e.descendant_id, distance=e.distance) for e in entries]

    def path(self, node_id: str) -> List[Relative]:
        """Ancestors including self, root-to-self order."""
        entries = self.closure.entries_with_descendant(self._scope(node_id), node_id)
        return [Relative(node_id=e.ancestor_id, distance=e.distance) for e in entries]

    def subtree(self, node_id: str) -> List[Relative]:
        """Descendants including self, self-to-leaves order."""
        entries = self.closure.entries_with_ancestor(self._scope(node_id), node_id)
        return [Relative(node_id=e.descendant_id, distance=e.distance) for e in entries]

    def lineage(self, node_id: str) -> List[Relative]:
        """
        Ancestors and descendants excluding self.

        Distance is signed by direction (negative = ancestor), and rows run
        from the farthest ancestor to the farthest descendant.
        """
        return self.closure.lineage_of(self._scope(node_id), node_id)

    def ancestor_entries(self, node_id: str) -> List[ClosureEntry]:
        return self.closure.ancestors_of(self._scope(node_id), node_id)

    def descendant_entries(self, node_id: str) -> List[ClosureEntry]:
        return self.closure.descendants_of(self._scope(node_id), node_id)

    # =========================================================================
    # SCOPE-WIDE VIEWS
    # =========================================================================

    def roots(self, scope: str) -> List[str]:
        """Nodes carrying a root marker."""
        return self.links.root_ids(scope)

    def leaves(self, scope: str) -> List[str]:
        """Nodes of the scope without real children."""
        with_children = set(self.links.linked_parent_ids(scope))
        return [n for n in self.nodes.ids_in_scope(scope) if n not in with_children]

    def non_roots(self, scope: str) -> List[str]:
        """Nodes that have at least one real parent."""
        return self.links.linked_child_ids(scope)

    def parent_nodes(self, scope: str) -> List[str]:
        """Nodes that have at least one real child."""
        return self.links.linked_parent_ids(scope)

    # =========================================================================
    # PREDICATES
    # =========================================================================

    def is_root(self, node_id: str) -> bool:
        return not self.parents(node_id)

    def is_leaf(self, node_id: str) -> bool:
        return not self.children(node_id)

    def is_child_of(self, node_id: str, other_id: str) -> bool:
        """True if node_id is one of other_id's children."""
        return node_id in self.children(other_id)

    def is_parent_of(self, node_id: str, other_id: str) -> bool:
        """True if node_id is one of other_id's parents."""
        return node_id in self.parents(other_id)

    def is_descendant_of(self, node_id: str, other_id: str) -> bool:
        """True if node_id is below other_id (self excluded)."""
        scope = self._scope(other_id)
        return node_id != other_id and self.closure.has_entry(scope, other_id, node_id)

    def is_ancestor_of(self, node_id: str, other_id: str) -> bool:
        """True if node_id is above other_id (self excluded)."""
        scope = self._scope(other_id)
        return node_id != other_id and self.closure.has_entry(scope, node_id, other_id)
