"""
CLOSURE - Materialized transitive closure for scoped DAGs.

This package provides:
- ClosureDAG: the facade (nodes, link/unlink, queries, lifecycle, export)
- LinkStore / ClosureStore: the two relation tables over SQLiteBackend
- GraphMutator: incremental closure maintenance and rebuild
- ClosureInvariants: recompute-and-compare verification
"""

from closure.backend import SQLiteBackend
from closure.closure_store import ClosureStore
from closure.dag import ClosureDAG, create_dag
from closure.errors import (
    DuplicateNodeError,
    GraphError,
    InvariantViolation,
    NodeNotFoundError,
    ScopeMismatchError,
    SelfLinkError,
)
from closure.invariants import ClosureInvariants, ClosureReport
from closure.lifecycle import LifecycleHooks
from closure.link_store import ANY, LinkStore
from closure.mutator import GraphMutator
from closure.node_store import NodeStore
from closure.queries import QueryFacade
from closure.schemas import ClosureEntry, Link, NodeRecord, Relative, unique_ids

__all__ = [
    # Facade
    "ClosureDAG",
    "create_dag",
    # Components
    "SQLiteBackend",
    "LinkStore",
    "ClosureStore",
    "NodeStore",
    "GraphMutator",
    "QueryFacade",
    "LifecycleHooks",
    "ClosureInvariants",
    "ClosureReport",
    "ANY",
    # Rows
    "NodeRecord",
    "Link",
    "ClosureEntry",
    "Relative",
    "unique_ids",
    # Errors
    "GraphError",
    "InvariantViolation",
    "NodeNotFoundError",
    "ScopeMismatchError",
    "SelfLinkError",
    "DuplicateNodeError",
]
