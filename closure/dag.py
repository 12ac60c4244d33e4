"""
CLOSURE DAG - The hierarchy engine behind one business-friendly object.

ClosureDAG wires the node store, the two relation stores, the mutator,
the query facade and the lifecycle hooks together. Every public mutation
runs in one backend transaction, so callers see all of it or none of it.

Usage:
    dag = ClosureDAG()

    a = dag.add_node("category", name="A")
    b = dag.add_node("category", name="B")
    dag.link(a.id, b.id)

    dag.ancestors(b.id)     # [Relative(node_id=a.id, distance=1)]
    dag.roots("category")   # [a.id]

Thread Safety:
    Mutations are serialized by the backend lock (single writer).
"""
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import polars as pl
import rustworkx as rx

from closure.backend import SQLiteBackend
from closure.closure_store import ClosureStore
from closure.invariants import ClosureInvariants, ClosureReport, build_graph
from closure.lifecycle import LifecycleHooks
from closure.link_store import LinkStore
from closure.mutator import GraphMutator
from closure.node_store import NodeStore
from closure.queries import QueryFacade
from closure.schemas import NodeRecord, Relative
from infrastructure.config import ClosureConfig
from infrastructure.event_bus import EventBus
from infrastructure.logger import LoggerConfig, MutationLogger


class ClosureDAG:
    """
    Materialized-closure DAG over scoped nodes.

    All public methods accept/return string node ids; relation rows live
    in the SQLite backend, node records in the node store.
    """

    def __init__(
        self,
        backend: Optional[SQLiteBackend] = None,
        nodes: Optional[NodeStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Args:
            backend: Relation backend; defaults to an in-memory SQLite store
            nodes: Node store; defaults to an empty in-memory registry
            event_bus: Optional observability sink for structural events
        """
        self.backend = backend or SQLiteBackend()
        self.node_store = nodes or NodeStore()
        self.event_bus = event_bus
        self.mutation_logger: Optional[MutationLogger] = None

        self.links = LinkStore(self.backend)
        self.closure = ClosureStore(self.backend)
        self.mutator = GraphMutator(self.node_store, self.links, self.closure, event_bus)
        self.queries = QueryFacade(self.node_store, self.links, self.closure)
        self.lifecycle = LifecycleHooks(
            self.node_store, self.links, self.closure, self.mutator, event_bus
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return len(self.node_store)

    @property
    def link_count(self) -> int:
        """Rows in the link table, root markers included."""
        return self.links.count()

    @property
    def closure_count(self) -> int:
        """Rows in the closure table, self entries included."""
        return self.closure.count()

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(
        self,
        scope: str,
        name: str = "",
        id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> NodeRecord:
        """
        Register a node and seed its hierarchy rows.

        Raises:
            DuplicateNodeError: If the id is already registered
        """
        node = NodeRecord.create(scope, name=name, id=id, data=data or {})
        self.node_store.add(node)
        try:
            self.lifecycle.on_create(node)
        except Exception:
            self.node_store.remove(node.id)
            raise
        return node

    def add_nodes(self, scope: str, names: Iterable[str]) -> List[NodeRecord]:
        """Add one node per name, in order."""
        return [self.add_node(scope, name=name) for name in names]

    def get_node(self, node_id: str) -> NodeRecord:
        return self.node_store.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return self.node_store.exists(node_id)

    def nodes(self, scope: str) -> List[NodeRecord]:
        return [self.node_store.get(n) for n in self.node_store.ids_in_scope(scope)]

    def remove_node(self, node_id: str) -> NodeRecord:
        """Detach a node from the hierarchy and drop it from the node store."""
        self.lifecycle.on_destroy(node_id)
        return self.node_store.remove(node_id)

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def link(self, parent_id: str, child_id: str) -> bool:
        """Create parent -> child. Returns False if it already existed."""
        return self.mutator.link(parent_id, child_id)

    def unlink(self, parent_id: Optional[str], child_id: str) -> bool:
        """Remove parent -> child. Returns False if it did not exist."""
        return self.mutator.unlink(parent_id, child_id)

    def add_parent(self, child_id: str, *parent_ids: str) -> None:
        """Link every given parent above child_id, atomically."""
        with self.backend.transaction():
            for parent_id in parent_ids:
                self.mutator.link(parent_id, child_id)

    def add_child(self, parent_id: str, *child_ids: str) -> None:
        """Link every given child below parent_id, atomically."""
        with self.backend.transaction():
            for child_id in child_ids:
                self.mutator.link(parent_id, child_id)

    def remove_parent(self, child_id: str, parent_id: str) -> str:
        """Unlink parent_id from child_id. Returns the parent."""
        self.mutator.unlink(parent_id, child_id)
        return parent_id

    def remove_child(self, parent_id: str, child_id: str) -> str:
        """Unlink child_id from parent_id. Returns the child."""
        self.mutator.unlink(parent_id, child_id)
        return child_id

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def reset_hierarchy(self, scope: str, node_ids: Optional[Iterable[str]] = None) -> List[str]:
        """Turn the given nodes (default: the whole scope) into isolated roots."""
        return self.lifecycle.reset(scope, node_ids)

    def make_root(self, node_id: str) -> None:
        self.lifecycle.make_root(node_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def parents(self, node_id: str) -> List[str]:
        return self.queries.parents(node_id)

    def children(self, node_id: str) -> List[str]:
        return self.queries.children(node_id)

    def ancestors(self, node_id: str) -> List[Relative]:
        return self.queries.ancestors(node_id)

    def descendants(self, node_id: str) -> List[Relative]:
        return self.queries.descendants(node_id)

    def path(self, node_id: str) -> List[Relative]:
        return self.queries.path(node_id)

    def subtree(self, node_id: str) -> List[Relative]:
        return self.queries.subtree(node_id)

    def lineage(self, node_id: str) -> List[Relative]:
        return self.queries.lineage(node_id)

    def roots(self, scope: str) -> List[str]:
        return self.queries.roots(scope)

    def leaves(self, scope: str) -> List[str]:
        return self.queries.leaves(scope)

    def is_root(self, node_id: str) -> bool:
        return self.queries.is_root(node_id)

    def is_leaf(self, node_id: str) -> bool:
        return self.queries.is_leaf(node_id)

    def is_child_of(self, node_id: str, other_id: str) -> bool:
        return self.queries.is_child_of(node_id, other_id)

    def is_parent_of(self, node_id: str, other_id: str) -> bool:
        return self.queries.is_parent_of(node_id, other_id)

    def is_ancestor_of(self, node_id: str, other_id: str) -> bool:
        return self.queries.is_ancestor_of(node_id, other_id)

    def is_descendant_of(self, node_id: str, other_id: str) -> bool:
        return self.queries.is_descendant_of(node_id, other_id)

    # =========================================================================
    # VERIFICATION
    # =========================================================================

    def verify(self, scope: str) -> ClosureReport:
        """Compare the stored closure of a scope with a fresh recomputation."""
        return ClosureInvariants.verify(
            self.links, self.closure, scope, self.node_store.ids_in_scope(scope)
        )

    # =========================================================================
    # EXPORT
    # =========================================================================

    def to_polars_nodes(self, scope: Optional[str] = None) -> pl.DataFrame:
        """Node records as a DataFrame (data payloads omitted)."""
        records = [n for n in self.node_store if scope is None or n.scope == scope]
        return pl.DataFrame(
            {
                "id": [n.id for n in records],
                "scope": [n.scope for n in records],
                "name": [n.name for n in records],
                "created_at": [n.created_at for n in records],
            },
            schema={"id": pl.Utf8, "scope": pl.Utf8, "name": pl.Utf8, "created_at": pl.Utf8},
        )

    def to_polars_links(self, scope: Optional[str] = None) -> pl.DataFrame:
        return links_frame(self.backend, scope)

    def to_polars_closure(self, scope: Optional[str] = None) -> pl.DataFrame:
        return closure_frame(self.backend, scope)

    def save_parquet(self, directory: Path | str) -> Dict[str, Path]:
        """Write nodes, links and closure tables as Parquet files."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        paths = {
            "nodes": directory / "nodes.parquet",
            "links": directory / "links.parquet",
            "closure": directory / "closure.parquet",
        }
        self.to_polars_nodes().write_parquet(paths["nodes"])
        self.to_polars_links().write_parquet(paths["links"])
        self.to_polars_closure().write_parquet(paths["closure"])
        return paths

    def to_rustworkx(self, scope: str) -> Tuple[rx.PyDiGraph, Dict[str, int]]:
        """Real links of a scope as a PyDiGraph plus the id -> index map."""
        return build_graph(self.links.all_links(scope), self.node_store.ids_in_scope(scope))

    def close(self) -> None:
        """Close the mutation log (if any) and the backend connection."""
        if self.mutation_logger is not None:
            self.mutation_logger.close()
        self.backend.close()

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, node_id: str) -> bool:
        return self.has_node(node_id)

    def __repr__(self) -> str:
        return (
            f"ClosureDAG(nodes={self.node_count}, links={self.link_count}, "
            f"closure={self.closure_count})"
        )


# =============================================================================
# TABLE FRAMES
# =============================================================================

def links_frame(backend: SQLiteBackend, scope: Optional[str] = None) -> pl.DataFrame:
    """The link table (optionally one scope) as a DataFrame."""
    sql = "SELECT scope, parent_id, child_id FROM dag_links"
    params: tuple = ()
    if scope is not None:
        sql += " WHERE scope = ?"
        params = (scope,)
    rows = backend.query(sql + " ORDER BY rowid", params)
    return pl.DataFrame(
        rows,
        schema={"scope": pl.Utf8, "parent_id": pl.Utf8, "child_id": pl.Utf8},
        orient="row",
    )


def closure_frame(backend: SQLiteBackend, scope: Optional[str] = None) -> pl.DataFrame:
    """The closure table (optionally one scope) as a DataFrame."""
    sql = "SELECT scope, ancestor_id, descendant_id, distance FROM dag_closure"
    params: tuple = ()
    if scope is not None:
        sql += " WHERE scope = ?"
        params = (scope,)
    rows = backend.query(sql + " ORDER BY scope, ancestor_id, descendant_id, distance", params)
    return pl.DataFrame(
        rows,
        schema={
            "scope": pl.Utf8,
            "ancestor_id": pl.Utf8,
            "descendant_id": pl.Utf8,
            "distance": pl.Int64,
        },
        orient="row",
    )


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_dag(config: Optional[ClosureConfig] = None, event_bus: Optional[EventBus] = None) -> ClosureDAG:
    """
    Create a ClosureDAG whose backend and observability follow the configuration.

    With [observability] enable_file_log set, a MutationLogger records every
    structural event to daily JSONL files; a private EventBus is created when
    none is passed. The logger is kept on dag.mutation_logger.
    """
    config = config or ClosureConfig()
    if config.observability.enable_file_log and event_bus is None:
        event_bus = EventBus()

    dag = ClosureDAG(backend=SQLiteBackend(config.store.path), event_bus=event_bus)
    if config.observability.enable_file_log:
        dag.mutation_logger = MutationLogger(
            LoggerConfig.from_config(config.observability), event_bus=event_bus
        )
    return dag
