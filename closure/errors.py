"""
CLOSURE ERRORS - The exception taxonomy of the hierarchy engine.

Every error raised by the core derives from GraphError. Invariant violations
are fatal to the calling operation and never retried; recovery belongs to the
caller's transaction boundary.
"""
from typing import Optional


class GraphError(Exception):
    """Base exception for hierarchy operations."""
    pass


class InvariantViolation(GraphError):
    """Raised when an operation would break a structural invariant."""
    pass


class NodeNotFoundError(InvariantViolation):
    """Raised when a node id is not in the node store."""
    def __init__(self, node_id: Optional[str]):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class ScopeMismatchError(InvariantViolation):
    """
    Raised when a node is used outside its scope.

    Either two nodes of different scopes are related (second_id set), or a
    single node is named in an operation on another scope (second_id None,
    second_scope is the scope the operation expected).
    """
    def __init__(
        self,
        first_id: str,
        first_scope: str,
        second_id: Optional[str],
        second_scope: str,
    ):
        self.first_id = first_id
        self.first_scope = first_scope
        self.second_id = second_id
        self.second_scope = second_scope
        if second_id is None:
            message = f"Node {first_id} belongs to scope {first_scope}, expected {second_scope}"
        else:
            message = (
                f"Nodes must share a scope: {first_id} ({first_scope}) "
                f"vs {second_id} ({second_scope})"
            )
        super().__init__(message)

    @classmethod
    def outside_scope(cls, node_id: str, node_scope: str, expected_scope: str) -> "ScopeMismatchError":
        """Error for a single node named in an operation on another scope."""
        return cls(node_id, node_scope, None, expected_scope)


class SelfLinkError(InvariantViolation):
    """Raised when a link would connect a node to itself."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Self referential links cannot be created: {node_id}")


class DuplicateNodeError(GraphError):
    """Raised when attempting to add a node with an existing id."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node already exists: {node_id}")
