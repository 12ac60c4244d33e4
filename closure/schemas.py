"""
CLOSURE SCHEMAS - The rows that flow through the hierarchy engine.

This module defines the data structures shared by the stores and the
query layer:
- NodeRecord: An external node identity, partitioned by scope
- Link: A direct parent -> child edge (parent None = root marker)
- ClosureEntry: An (ancestor, descendant, distance) path witness
- Relative: A read-view row (node id + distance) returned by queries

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent ancestor/descendant mix-ups
3. FROZEN ROWS: Links and closure entries are values, never mutated in place
"""
import msgspec
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime, timezone
import uuid


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    """Generate a new UUID hex string for node IDs."""
    return uuid.uuid4().hex


# =============================================================================
# NODE RECORD (The External Identity)
# =============================================================================

class NodeRecord(msgspec.Struct, kw_only=True, frozen=False):
    """
    A node known to the node store.

    The hierarchy core never builds these itself; it only references
    `id` values within the node's `scope`. Two nodes can only be related
    when they share a scope.
    """
    id: str
    scope: str
    name: str = ""
    data: Dict[str, Any] = msgspec.field(default_factory=dict)
    created_at: str = msgspec.field(default_factory=now_utc)

    @classmethod
    def create(cls, scope: str, name: str = "", **kwargs) -> "NodeRecord":
        """Factory method to create a new NodeRecord with optional custom ID."""
        node_id = kwargs.pop("id", None) or generate_id()
        return cls(id=node_id, scope=scope, name=name, **kwargs)


# =============================================================================
# RELATION ROWS
# =============================================================================

class Link(msgspec.Struct, kw_only=True, frozen=True):
    """
    A direct edge in the link table.

    parent_id None is the root marker: the child currently has no parent.
    """
    scope: str
    parent_id: Optional[str]
    child_id: str

    @property
    def is_root_marker(self) -> bool:
        return self.parent_id is None


class ClosureEntry(msgspec.Struct, kw_only=True, frozen=True):
    """
    A path witness: a directed path of `distance` edges exists from
    ancestor to descendant. Several entries may share a pair when paths
    of different lengths exist.
    """
    scope: str
    ancestor_id: str
    descendant_id: str
    distance: int

    def as_triple(self) -> tuple:
        return (self.ancestor_id, self.descendant_id, self.distance)


class Relative(msgspec.Struct, kw_only=True, frozen=True):
    """
    A node seen from another node.

    For ancestors/descendants/path/subtree the distance is the path
    length. For lineage it is signed: negative above, positive below.
    """
    node_id: str
    distance: int


def unique_ids(relatives: Iterable[Relative]) -> List[str]:
    """Node ids of relatives, de-duplicated in first-occurrence order."""
    seen = set()
    result = []
    for rel in relatives:
        if rel.node_id not in seen:
            seen.add(rel.node_id)
            result.append(rel.node_id)
    return result


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

_encoder = msgspec.json.Encoder()


def serialize_links(links: List[Link]) -> bytes:
    """Serialize a list of Links to JSON bytes."""
    return _encoder.encode(links)


def serialize_entries(entries: List[ClosureEntry]) -> bytes:
    """Serialize closure entries to JSON bytes."""
    return _encoder.encode(entries)
