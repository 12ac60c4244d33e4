"""
CLOSURE LIFECYCLE - Seeding, resetting and tearing down node hierarchy rows.

on_create    root marker + self closure entry for a new node
reset        wipe and re-seed a set of nodes as isolated roots, then repair
             the closure of the nodes around the set
make_root    detach a node from all its parents
on_destroy   detach a node from parents and children, then drop its rows
"""
import logging
from typing import Iterable, List, Optional

from closure.closure_store import ClosureStore
from closure.errors import NodeNotFoundError, ScopeMismatchError
from closure.link_store import LinkStore
from closure.mutator import GraphMutator
from closure.node_store import NodeStore
from closure.schemas import NodeRecord
from infrastructure.event_bus import EventBus, EventType


logger = logging.getLogger("closure.lifecycle")


class LifecycleHooks:
    """Keeps the stores in step with the node lifecycle."""

    def __init__(
        self,
        nodes: NodeStore,
        links: LinkStore,
        closure: ClosureStore,
        mutator: GraphMutator,
        event_bus: Optional[EventBus] = None,
    ):
        self.nodes = nodes
        self.links = links
        self.closure = closure
        self.mutator = mutator
        self.backend = links.backend
        self._event_bus = event_bus

    def _emit(self, event_type: EventType, **payload) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event_type, source="lifecycle", **payload)

    def on_create(self, node: NodeRecord) -> None:
        """Seed the root marker link and the (n, n, 0) closure entry."""
        with self.backend.transaction():
            self.links.create_link(node.scope, None, node.id)
            self.closure.insert_self(node.scope, node.id)
        self._emit(EventType.NODE_SEEDED, scope=node.scope, node_id=node.id)

    def _validated_ids(self, scope: str, node_ids: Iterable[str]) -> List[str]:
        result = []
        for node_id in node_ids:
            if not self.nodes.exists(node_id):
                raise NodeNotFoundError(node_id)
            node_scope = self.nodes.scope_of(node_id)
            if node_scope != scope:
                raise ScopeMismatchError.outside_scope(node_id, node_scope, scope)
            if node_id not in result:
                result.append(node_id)
        return result

    def reset(self, scope: str, node_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Remove all hierarchy information for a set of nodes.

        Every node of the set ends up an isolated root holding only its
        self entry. Nodes outside the set that were connected through it
        lose those paths: orphans get their root marker back and their
        closure is rebuilt from the surrounding roots.

        Args:
            scope: Scope being reset
            node_ids: Nodes to reset; None resets the whole scope

        Returns:
            The ids that were reset
        """
        if node_ids is None:
            node_ids = self.nodes.ids_in_scope(scope)
        ids = self._validated_ids(scope, node_ids)
        reset_set = set(ids)

        with self.backend.transaction():
            outside_above: List[str] = []
            outside_below: List[str] = []
            for node_id in ids:
                for ancestor_id in self.closure.ancestor_ids(scope, node_id):
                    if ancestor_id not in reset_set and ancestor_id not in outside_above:
                        outside_above.append(ancestor_id)
                for descendant_id in self.closure.descendant_ids(scope, node_id):
                    if descendant_id not in reset_set and descendant_id not in outside_below:
                        outside_below.append(descendant_id)

            logger.info(f"Clearing {scope} hierarchy links")
            self.links.delete_touching(scope, ids)

            logger.info(f"Clearing {scope} hierarchy descendants")
            self.closure.delete_touching(scope, ids)

            for node_id in ids:
                self.links.create_link(scope, None, node_id)
                self.closure.insert_self(scope, node_id)

            if outside_above and outside_below:
                self.closure.delete_where(scope, outside_above, outside_below)

            for node_id in outside_below:
                if not self.links.has_real_parent(scope, node_id):
                    self.links.create_link(scope, None, node_id)

            for node_id in self.mutator.starting_points(scope, outside_above + outside_below):
                self.mutator.rebuild(scope, node_id)

        self._emit(EventType.HIERARCHY_RESET, scope=scope, node_ids=ids)
        return ids

    def make_root(self, node_id: str) -> None:
        """Detach node_id from every parent; its own subtree stays intact."""
        scope = self.mutator.resolve_scope(None, node_id)
        with self.backend.transaction():
            for parent_id in self.links.parent_ids(scope, node_id):
                self.mutator.unlink(parent_id, node_id)

    def on_destroy(self, node_id: str) -> None:
        """
        Drop every row referencing node_id.

        Parents and children are unlinked first so that children are
        re-rooted and the closure around the node is re-derived.
        """
        scope = self.mutator.resolve_scope(None, node_id)
        with self.backend.transaction():
            for parent_id in self.links.parent_ids(scope, node_id):
                self.mutator.unlink(parent_id, node_id)
            for child_id in self.links.child_ids(scope, node_id):
                self.mutator.unlink(node_id, child_id)
            self.links.delete_touching(scope, [node_id])
            self.closure.delete_touching(scope, [node_id])
        self._emit(EventType.NODE_DELETED, scope=scope, node_id=node_id)
