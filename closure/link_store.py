"""
CLOSURE LINK STORE - Direct parent -> child edges.

Besides real edges, every parentless node owns exactly one root marker
row (parent_id NULL). The marker is seeded at node creation, dropped when
the node gains its first real parent, and restored when it loses its last.

Every operation takes the scope first; one store serves all scopes.
"""
from typing import Iterable, List, Optional

from closure.backend import SQLiteBackend, json_ids
from closure.errors import SelfLinkError
from closure.schemas import Link


class _AnyId:
    """Filter marker meaning "do not constrain this column"."""

    def __repr__(self) -> str:
        return "ANY"


ANY = _AnyId()


class LinkStore:
    """Scope-partitioned access to the dag_links table."""

    def __init__(self, backend: SQLiteBackend):
        self.backend = backend

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_link(self, scope: str, parent_id: Optional[str], child_id: str) -> bool:
        """
        Insert the link (parent_id, child_id).

        A link that already exists is left alone; the store checks first
        instead of relying on the database to reject duplicates.

        Returns:
            True if a row was inserted

        Raises:
            SelfLinkError: If parent_id == child_id
        """
        if parent_id is not None and parent_id == child_id:
            raise SelfLinkError(child_id)
        if self.has_link(scope, parent_id, child_id):
            return False
        self.backend.execute(
            "INSERT INTO dag_links (scope, parent_id, child_id) VALUES (?, ?, ?)",
            (scope, parent_id, child_id),
        )
        return True

    def delete_link(self, scope: str, parent_id: Optional[str], child_id: str) -> bool:
        """Remove at most one matching row. Returns True if one was removed."""
        removed = self.backend.execute(
            """
            DELETE FROM dag_links WHERE rowid IN (
                SELECT rowid FROM dag_links
                WHERE scope = ? AND parent_id IS ? AND child_id = ?
                LIMIT 1
            )
            """,
            (scope, parent_id, child_id),
        )
        return removed > 0

    def delete_touching(self, scope: str, node_ids: Iterable[str]) -> int:
        """Bulk-delete every link whose parent or child is in node_ids."""
        ids = json_ids(node_ids)
        return self.backend.execute(
            """
            DELETE FROM dag_links
            WHERE scope = ?
              AND (parent_id IN (SELECT value FROM json_each(?))
                   OR child_id IN (SELECT value FROM json_each(?)))
            """,
            (scope, ids, ids),
        )

    # =========================================================================
    # READS
    # =========================================================================

    def has_link(self, scope: str, parent_id: Optional[str], child_id: str) -> bool:
        row = self.backend.query_one(
            """
            SELECT 1 FROM dag_links
            WHERE scope = ? AND parent_id IS ? AND child_id = ?
            LIMIT 1
            """,
            (scope, parent_id, child_id),
        )
        return row is not None

    def has_real_parent(self, scope: str, node_id: str) -> bool:
        """True iff a link with this child and a non-NULL parent exists."""
        row = self.backend.query_one(
            """
            SELECT 1 FROM dag_links
            WHERE scope = ? AND child_id = ? AND parent_id IS NOT NULL
            LIMIT 1
            """,
            (scope, node_id),
        )
        return row is not None

    def has_root_marker(self, scope: str, node_id: str) -> bool:
        return self.has_link(scope, None, node_id)

    def find_links(self, scope: str, parent_id=ANY, child_id=ANY) -> List[Link]:
        """
        Scan links by parent and/or child.

        Pass None as parent_id to select root markers; leave a column at
        ANY to leave it unconstrained.
        """
        sql = "SELECT scope, parent_id, child_id FROM dag_links WHERE scope = ?"
        params: list = [scope]
        if parent_id is not ANY:
            sql += " AND parent_id IS ?"
            params.append(parent_id)
        if child_id is not ANY:
            sql += " AND child_id = ?"
            params.append(child_id)
        sql += " ORDER BY rowid"
        return [
            Link(scope=row[0], parent_id=row[1], child_id=row[2])
            for row in self.backend.query(sql, params)
        ]

    def parent_ids(self, scope: str, node_id: str) -> List[str]:
        """Real parents one hop above node_id."""
        rows = self.backend.query(
            """
            SELECT parent_id FROM dag_links
            WHERE scope = ? AND child_id = ? AND parent_id IS NOT NULL
            ORDER BY rowid
            """,
            (scope, node_id),
        )
        return [row[0] for row in rows]

    def child_ids(self, scope: str, node_id: str) -> List[str]:
        """Real children one hop below node_id."""
        rows = self.backend.query(
            """
            SELECT child_id FROM dag_links
            WHERE scope = ? AND parent_id = ?
            ORDER BY rowid
            """,
            (scope, node_id),
        )
        return [row[0] for row in rows]

    def root_ids(self, scope: str) -> List[str]:
        """Children of root markers, in insertion order."""
        rows = self.backend.query(
            """
            SELECT child_id FROM dag_links
            WHERE scope = ? AND parent_id IS NULL
            ORDER BY rowid
            """,
            (scope,),
        )
        return [row[0] for row in rows]

    def linked_child_ids(self, scope: str) -> List[str]:
        """Distinct nodes that currently have at least one real parent."""
        rows = self.backend.query(
            """
            SELECT child_id FROM dag_links
            WHERE scope = ? AND parent_id IS NOT NULL
            GROUP BY child_id
            ORDER BY MIN(rowid)
            """,
            (scope,),
        )
        return [row[0] for row in rows]

    def linked_parent_ids(self, scope: str) -> List[str]:
        """Distinct nodes that currently have at least one real child."""
        rows = self.backend.query(
            """
            SELECT parent_id FROM dag_links
            WHERE scope = ? AND parent_id IS NOT NULL
            GROUP BY parent_id
            ORDER BY MIN(rowid)
            """,
            (scope,),
        )
        return [row[0] for row in rows]

    def all_links(self, scope: str) -> List[Link]:
        return self.find_links(scope)

    def count(self, scope: Optional[str] = None) -> int:
        if scope is None:
            return self.backend.query_one("SELECT COUNT(*) FROM dag_links")[0]
        return self.backend.query_one(
            "SELECT COUNT(*) FROM dag_links WHERE scope = ?", (scope,)
        )[0]
