"""
CLOSURE MUTATOR - Incremental maintenance of the transitive closure.

Two algorithms keep the link table and the closure table consistent:

link(parent, child)
  Every ancestor of parent (parent itself at distance 0) becomes an
  ancestor of every descendant of child (child itself at distance 0),
  at the summed distance plus one for the new edge.

unlink(parent, child)
  Every closure entry from an ancestor of parent to a descendant of child
  is deleted, including ones an alternate path still justifies. The
  closure is then re-derived by walking down from every parentless node
  of the affected region.

      A   F          unlink(C, D): delete {A, C} x {D, E},
     / \\ /           then rebuild from the roots A and D.
    B   C
    |
    |   D
     \\ /
      E

Both run inside one backend transaction: a failure leaves no partial
closure behind.
"""
import logging
from typing import Iterable, List, Optional, Sequence

from closure.closure_store import ClosureStore
from closure.errors import (
    InvariantViolation,
    NodeNotFoundError,
    ScopeMismatchError,
    SelfLinkError,
)
from closure.link_store import LinkStore
from closure.node_store import NodeStore
from infrastructure.event_bus import EventBus, EventType


logger = logging.getLogger("closure.mutator")


class GraphMutator:
    """
    Applies edge insertions and removals to the link and closure stores.

    Not re-entrant across scopes in any special way: the backend lock
    serializes every mutation.
    """

    def __init__(
        self,
        nodes: NodeStore,
        links: LinkStore,
        closure: ClosureStore,
        event_bus: Optional[EventBus] = None,
    ):
        self.nodes = nodes
        self.links = links
        self.closure = closure
        self.backend = links.backend
        self._event_bus = event_bus

    def _emit(self, event_type: EventType, **payload) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event_type, source="mutator", **payload)

    # =========================================================================
    # PRECONDITIONS
    # =========================================================================

    def resolve_scope(self, parent_id: Optional[str], child_id: Optional[str]) -> str:
        """
        Check that parent and child may be related and return their scope.

        Raises:
            NodeNotFoundError: If either id is unknown (child is mandatory)
            SelfLinkError: If parent and child are the same node
            ScopeMismatchError: If the nodes live in different scopes
        """
        if child_id is None or not self.nodes.exists(child_id):
            raise NodeNotFoundError(child_id)
        child_scope = self.nodes.scope_of(child_id)
        if parent_id is None:
            return child_scope

        if not self.nodes.exists(parent_id):
            raise NodeNotFoundError(parent_id)
        if parent_id == child_id:
            raise SelfLinkError(child_id)
        parent_scope = self.nodes.scope_of(parent_id)
        if parent_scope != child_scope:
            raise ScopeMismatchError(parent_id, parent_scope, child_id, child_scope)
        return child_scope

    # =========================================================================
    # LINK
    # =========================================================================

    def link(self, parent_id: Optional[str], child_id: str) -> bool:
        """
        Create the edge parent -> child and extend the closure through it.

        Linking an existing edge is a no-op with no closure side effects.
        Passing None as parent only (re)creates the root marker, which is
        refused while the child still has a real parent.

        Returns:
            True if a new link was created
        """
        scope = self.resolve_scope(parent_id, child_id)

        with self.backend.transaction():
            if self.links.has_link(scope, parent_id, child_id):
                logger.info(f"Skipping closure update because the link {parent_id} -> {child_id} already exists")
                return False

            if parent_id is None and self.links.has_real_parent(scope, child_id):
                raise InvariantViolation(
                    f"Cannot mark {child_id} as a root while it has parents"
                )

            self.links.create_link(scope, parent_id, child_id)
            self._emit(EventType.LINK_CREATED, scope=scope, parent_id=parent_id, child_id=child_id)

            # Root markers carry no closure
            if parent_id is None:
                return True

            if self.links.delete_link(scope, None, child_id):
                self._emit(EventType.LINK_DELETED, scope=scope, parent_id=None, child_id=child_id)

            parent_ancestors = self.closure.entries_with_descendant(scope, parent_id)
            child_descendants = self.closure.entries_with_ancestor(scope, child_id)

            for upper in parent_ancestors:
                for lower in child_descendants:
                    distance = upper.distance + lower.distance + 1
                    if self.closure.insert_if_absent(scope, upper.ancestor_id, lower.descendant_id, distance):
                        self._emit(
                            EventType.CLOSURE_INSERTED,
                            scope=scope,
                            ancestor_id=upper.ancestor_id,
                            descendant_id=lower.descendant_id,
                            distance=distance,
                        )

        return True

    # =========================================================================
    # UNLINK
    # =========================================================================

    def unlink(self, parent_id: Optional[str], child_id: str) -> bool:
        """
        Remove the edge parent -> child and repair the closure.

        Removing a root marker (parent None) never touches the closure.
        A child left without real parents gets its root marker back.

        Returns:
            True if a link row was removed
        """
        scope = self.resolve_scope(parent_id, child_id)

        with self.backend.transaction():
            removed = self.links.delete_link(scope, parent_id, child_id)
            if removed:
                self._emit(EventType.LINK_DELETED, scope=scope, parent_id=parent_id, child_id=child_id)

            # Nothing in the closure derives from the sentinel
            if parent_id is None:
                return removed

            parent_ancestor_ids = self.closure.ancestor_ids(scope, parent_id)
            child_descendant_ids = self.closure.descendant_ids(scope, child_id)

            deleted = self.closure.delete_where(scope, parent_ancestor_ids, child_descendant_ids)
            self._emit(
                EventType.CLOSURE_DELETED,
                scope=scope,
                parent_id=parent_id,
                child_id=child_id,
                count=deleted,
            )

            if not self.links.has_real_parent(scope, child_id):
                if self.links.create_link(scope, None, child_id):
                    self._emit(EventType.LINK_CREATED, scope=scope, parent_id=None, child_id=child_id)

            starting_points = self.starting_points(scope, parent_ancestor_ids + child_descendant_ids)
            logger.info(f"Starting points are {', '.join(starting_points)}")

            for node_id in starting_points:
                self.rebuild(scope, node_id)

        return removed

    def starting_points(self, scope: str, node_ids: Sequence[str]) -> List[str]:
        """Parentless nodes among node_ids, de-duplicated in order."""
        seen = set()
        result = []
        for node_id in node_ids:
            if node_id in seen:
                continue
            seen.add(node_id)
            if not self.links.has_real_parent(scope, node_id):
                result.append(node_id)
        return result

    # =========================================================================
    # REBUILD
    # =========================================================================

    def rebuild(self, scope: str, node_id: str, ancestor_path: Iterable[str] = ()) -> int:
        """
        Re-derive closure entries below node_id by depth-first descent.

        Each frame carries its own immutable path tuple, so a branch never
        sees nodes appended by a sibling. Every node reached records one
        entry per element of its path, at the number of steps from that
        element. Children are revisited through every parent chain, so
        every distinct path length is rediscovered.

        Args:
            scope: Scope of node_id
            node_id: Node to start from (normally a root)
            ancestor_path: Nodes already traversed above node_id, farthest first

        Returns:
            Number of closure entries inserted
        """
        self._emit(EventType.REBUILD_STARTED, scope=scope, node_id=node_id)
        inserted = 0
        stack = [(node_id, tuple(ancestor_path))]

        with self.backend.transaction():
            while stack:
                current, path = stack.pop()
                path = path + (current,)
                indent = "  " * (len(path) - 1)
                logger.debug(f"{indent}Rebuilding descendant links of {current}")

                for distance, ancestor in enumerate(reversed(path)):
                    if self.closure.insert_if_absent(scope, ancestor, current, distance):
                        inserted += 1
                        logger.debug(f"{indent}{ancestor} is an ancestor of {current} with distance {distance}")
                        self._emit(
                            EventType.CLOSURE_INSERTED,
                            scope=scope,
                            ancestor_id=ancestor,
                            descendant_id=current,
                            distance=distance,
                        )

                # Reversed so the first child is walked first
                for child in reversed(self.links.child_ids(scope, current)):
                    stack.append((child, path))

        self._emit(EventType.REBUILD_FINISHED, scope=scope, node_id=node_id, inserted=inserted)
        return inserted
