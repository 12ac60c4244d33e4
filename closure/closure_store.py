"""
CLOSURE STORE - The materialized (ancestor, descendant, distance) multiset.

Every node owns a self entry (n, n, 0). Any other entry (a, d, k) witnesses
a directed path of k real edges from a to d. Several entries may exist for
one pair when paths of different lengths exist; duplicates are only ever
detected on the exact triple.

Ordering contract:
- ancestors: distance DESC (farthest first)
- descendants: distance ASC (nearest first)
"""
from typing import Iterable, List, Optional

from closure.backend import SQLiteBackend, json_ids
from closure.schemas import ClosureEntry, Relative


_COLUMNS = "scope, ancestor_id, descendant_id, distance"


def _entry(row) -> ClosureEntry:
    return ClosureEntry(scope=row[0], ancestor_id=row[1], descendant_id=row[2], distance=row[3])


class ClosureStore:
    """Scope-partitioned access to the dag_closure table."""

    def __init__(self, backend: SQLiteBackend):
        self.backend = backend

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert_self(self, scope: str, node_id: str) -> bool:
        """Insert (node_id, node_id, 0). Idempotent."""
        return self.insert_if_absent(scope, node_id, node_id, 0)

    def insert_if_absent(self, scope: str, ancestor_id: str, descendant_id: str, distance: int) -> bool:
        """
        Insert the exact triple unless it is already stored.

        Returns:
            True if a row was inserted
        """
        inserted = self.backend.execute(
            f"""
            INSERT INTO dag_closure ({_COLUMNS})
            SELECT ?, ?, ?, ?
            WHERE NOT EXISTS (
                SELECT 1 FROM dag_closure
                WHERE scope = ? AND ancestor_id = ? AND descendant_id = ? AND distance = ?
            )
            """,
            (scope, ancestor_id, descendant_id, distance,
             scope, ancestor_id, descendant_id, distance),
        )
        return inserted > 0

    def delete_where(self, scope: str, ancestor_in: Iterable[str], descendant_in: Iterable[str]) -> int:
        """
        Remove every entry with ancestor in ancestor_in AND descendant in
        descendant_in.

        Over-deletes on purpose: entries still justified by another path
        are removed too and must be restored by a rebuild.
        """
        return self.backend.execute(
            """
            DELETE FROM dag_closure
            WHERE scope = ?
              AND ancestor_id IN (SELECT value FROM json_each(?))
              AND descendant_id IN (SELECT value FROM json_each(?))
            """,
            (scope, json_ids(ancestor_in), json_ids(descendant_in)),
        )

    def delete_touching(self, scope: str, node_ids: Iterable[str]) -> int:
        """Remove every entry whose ancestor or descendant is in node_ids."""
        ids = json_ids(node_ids)
        return self.backend.execute(
            """
            DELETE FROM dag_closure
            WHERE scope = ?
              AND (ancestor_id IN (SELECT value FROM json_each(?))
                   OR descendant_id IN (SELECT value FROM json_each(?)))
            """,
            (scope, ids, ids),
        )

    # =========================================================================
    # READS
    # =========================================================================

    def ancestors_of(self, scope: str, node_id: str) -> List[ClosureEntry]:
        """Entries ending at node_id, self excluded, farthest first."""
        rows = self.backend.query(
            f"""
            SELECT {_COLUMNS} FROM dag_closure
            WHERE scope = ? AND descendant_id = ? AND ancestor_id <> descendant_id
            ORDER BY distance DESC, rowid
            """,
            (scope, node_id),
        )
        return [_entry(row) for row in rows]

    def descendants_of(self, scope: str, node_id: str) -> List[ClosureEntry]:
        """Entries starting at node_id, self excluded, nearest first."""
        rows = self.backend.query(
            f"""
            SELECT {_COLUMNS} FROM dag_closure
            WHERE scope = ? AND ancestor_id = ? AND ancestor_id <> descendant_id
            ORDER BY distance ASC, rowid
            """,
            (scope, node_id),
        )
        return [_entry(row) for row in rows]

    def entries_with_descendant(self, scope: str, node_id: str) -> List[ClosureEntry]:
        """Entries ending at node_id, self included, farthest first."""
        rows = self.backend.query(
            f"""
            SELECT {_COLUMNS} FROM dag_closure
            WHERE scope = ? AND descendant_id = ?
            ORDER BY distance DESC, rowid
            """,
            (scope, node_id),
        )
        return [_entry(row) for row in rows]

    def entries_with_ancestor(self, scope: str, node_id: str) -> List[ClosureEntry]:
        """Entries starting at node_id, self included, nearest first."""
        rows = self.backend.query(
            f"""
            SELECT {_COLUMNS} FROM dag_closure
            WHERE scope = ? AND ancestor_id = ?
            ORDER BY distance ASC, rowid
            """,
            (scope, node_id),
        )
        return [_entry(row) for row in rows]

    def ancestor_ids(self, scope: str, node_id: str) -> List[str]:
        """Distinct ancestor ids of node_id, self included."""
        rows = self.backend.query(
            """
            SELECT ancestor_id FROM dag_closure
            WHERE scope = ? AND descendant_id = ?
            GROUP BY ancestor_id
            ORDER BY MAX(distance) DESC, MIN(rowid)
            """,
            (scope, node_id),
        )
        return [row[0] for row in rows]

    def descendant_ids(self, scope: str, node_id: str) -> List[str]:
        """Distinct descendant ids of node_id, self included."""
        rows = self.backend.query(
            """
            SELECT descendant_id FROM dag_closure
            WHERE scope = ? AND ancestor_id = ?
            GROUP BY descendant_id
            ORDER BY MIN(distance) ASC, MIN(rowid)
            """,
            (scope, node_id),
        )
        return [row[0] for row in rows]

    def lineage_of(self, scope: str, node_id: str) -> List[Relative]:
        """
        Ancestors and descendants of node_id with signed distance.

        Ancestors come back negative and descendants positive, ordered
        from the farthest ancestor to the farthest descendant.
        """
        rows = self.backend.query(
            """
            SELECT
                CASE ancestor_id WHEN ? THEN descendant_id ELSE ancestor_id END AS node_id,
                CASE ancestor_id WHEN ? THEN distance ELSE -distance END AS signed_distance
            FROM dag_closure
            WHERE scope = ?
              AND (ancestor_id = ? OR descendant_id = ?)
              AND ancestor_id <> descendant_id
            ORDER BY signed_distance, rowid
            """,
            (node_id, node_id, scope, node_id, node_id),
        )
        return [Relative(node_id=row[0], distance=row[1]) for row in rows]

    def has_entry(self, scope: str, ancestor_id: str, descendant_id: str, distance: Optional[int] = None) -> bool:
        sql = (
            "SELECT 1 FROM dag_closure "
            "WHERE scope = ? AND ancestor_id = ? AND descendant_id = ?"
        )
        params: list = [scope, ancestor_id, descendant_id]
        if distance is not None:
            sql += " AND distance = ?"
            params.append(distance)
        return self.backend.query_one(sql + " LIMIT 1", params) is not None

    def all_entries(self, scope: str) -> List[ClosureEntry]:
        rows = self.backend.query(
            f"""
            SELECT {_COLUMNS} FROM dag_closure
            WHERE scope = ?
            ORDER BY ancestor_id, descendant_id, distance
            """,
            (scope,),
        )
        return [_entry(row) for row in rows]

    def count(self, scope: Optional[str] = None) -> int:
        if scope is None:
            return self.backend.query_one("SELECT COUNT(*) FROM dag_closure")[0]
        return self.backend.query_one(
            "SELECT COUNT(*) FROM dag_closure WHERE scope = ?", (scope,)
        )[0]
