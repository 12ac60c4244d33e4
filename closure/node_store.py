"""
In-memory node registry.

The hierarchy core treats node persistence as an external concern; this
registry is the reference implementation of the contract it consumes:
exists / same_scope / scope_of plus basic create, fetch and delete.
"""
from typing import Dict, Iterator, List, Optional

from closure.errors import DuplicateNodeError, NodeNotFoundError
from closure.schemas import NodeRecord


class NodeStore:
    """Dictionary-backed store of NodeRecords keyed by id."""

    def __init__(self):
        self._nodes: Dict[str, NodeRecord] = {}

    def add(self, node: NodeRecord) -> NodeRecord:
        """
        Register a node.

        Raises:
            DuplicateNodeError: If a node with the same id exists
        """
        if node.id in self._nodes:
            raise DuplicateNodeError(node.id)
        self._nodes[node.id] = node
        return node

    def get(self, node_id: str) -> NodeRecord:
        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)
        return self._nodes[node_id]

    def remove(self, node_id: str) -> NodeRecord:
        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)
        return self._nodes.pop(node_id)

    def exists(self, node_id: Optional[str]) -> bool:
        return node_id is not None and node_id in self._nodes

    def scope_of(self, node_id: str) -> str:
        return self.get(node_id).scope

    def same_scope(self, first_id: str, second_id: str) -> bool:
        return self.scope_of(first_id) == self.scope_of(second_id)

    def ids_in_scope(self, scope: str) -> List[str]:
        """Ids of every node in a scope, in registration order."""
        return [n.id for n in self._nodes.values() if n.scope == scope]

    def scopes(self) -> List[str]:
        return sorted({n.scope for n in self._nodes.values()})

    def __iter__(self) -> Iterator[NodeRecord]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes
