"""
CLOSURE BACKEND - SQLite persistence for the link and closure tables.

One backend serves every scope: rows are partitioned by a `scope` column
rather than by one table per node type.

Tables:
- dag_links: direct parent -> child edges (parent NULL = root marker)
- dag_closure: (ancestor, descendant, distance) path witnesses

Write discipline: a single re-entrant lock serializes statements and
transactions. A mutation holds the lock for its whole transaction, so
readers never observe a partially maintained closure.
"""
import sqlite3
import msgspec
import threading
import contextlib
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple


logger = logging.getLogger("closure.backend")


_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS dag_links (
    scope TEXT NOT NULL,
    parent_id TEXT,
    child_id TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    CHECK (parent_id IS NULL OR parent_id <> child_id)
);

CREATE TABLE IF NOT EXISTS dag_closure (
    scope TEXT NOT NULL,
    ancestor_id TEXT NOT NULL,
    descendant_id TEXT NOT NULL,
    distance INTEGER NOT NULL CHECK (distance >= 0)
);

CREATE INDEX IF NOT EXISTS idx_links_child ON dag_links(scope, child_id);
CREATE INDEX IF NOT EXISTS idx_links_parent ON dag_links(scope, parent_id);
CREATE INDEX IF NOT EXISTS idx_closure_ancestor ON dag_closure(scope, ancestor_id);
CREATE INDEX IF NOT EXISTS idx_closure_descendant ON dag_closure(scope, descendant_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_closure_triple
    ON dag_closure(scope, ancestor_id, descendant_id, distance);
"""


class SQLiteBackend:
    """
    SQLite-backed relation store shared by LinkStore and ClosureStore.

    Usage:
        backend = SQLiteBackend()                 # in-memory
        backend = SQLiteBackend("data/dag.db")    # file-backed

        with backend.transaction():
            backend.execute("INSERT ...", params)

    Thread Safety:
        Statements and transactions are serialized with an RLock. Nested
        transaction() calls become savepoints inside the outer transaction.
    """

    MEMORY = ":memory:"

    def __init__(self, db_path: Path | str | None = None):
        """
        Open the database and create the schema if needed.

        Args:
            db_path: File path, or None / ":memory:" for an in-memory store
        """
        if db_path is None or str(db_path) == self.MEMORY:
            self.db_path = self.MEMORY
        else:
            path = Path(db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(path)

        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(
            self.db_path,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.executescript(_SCHEMA_DDL)
        logger.debug(f"Opened relation backend at {self.db_path}")

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block atomically.

        The outermost call issues BEGIN/COMMIT; nested calls use savepoints
        so an inner failure only rolls back its own work. Any exception
        rolls back and propagates.
        """
        with self._lock:
            depth = self._depth
            savepoint = f"closure_sp_{depth}"
            if depth == 0:
                self._conn.execute("BEGIN")
            else:
                self._conn.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                    self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            else:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("COMMIT")
                else:
                    self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # =========================================================================
    # STATEMENTS
    # =========================================================================

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement. Returns the affected row count."""
        with self._lock:
            cursor = self._conn.execute(sql, params)
            return cursor.rowcount

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        """Run a read statement and fetch every row."""
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Tuple[Any, ...]]:
        """Run a read statement and fetch the first row (or None)."""
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def scopes(self) -> List[str]:
        """All scopes that have at least one link or closure row."""
        rows = self.query(
            """
            SELECT scope FROM dag_links
            UNION
            SELECT scope FROM dag_closure
            ORDER BY scope
            """
        )
        return [row[0] for row in rows]

    def table_counts(self, scope: Optional[str] = None) -> Dict[str, int]:
        """Row counts of both tables, optionally restricted to one scope."""
        if scope is None:
            links = self.query_one("SELECT COUNT(*) FROM dag_links")[0]
            closure = self.query_one("SELECT COUNT(*) FROM dag_closure")[0]
        else:
            links = self.query_one(
                "SELECT COUNT(*) FROM dag_links WHERE scope = ?", (scope,)
            )[0]
            closure = self.query_one(
                "SELECT COUNT(*) FROM dag_closure WHERE scope = ?", (scope,)
            )[0]
        return {"links": links, "closure": closure}

    def close(self) -> None:
        """Close the connection."""
        with self._lock:
            self._conn.close()

    def __repr__(self) -> str:
        return f"SQLiteBackend(db_path={self.db_path!r})"


def json_ids(ids) -> str:
    """
    Encode an id collection for `IN (SELECT value FROM json_each(?))`.

    One bound parameter regardless of set size, so bulk predicates never
    hit SQLite's variable limit.
    """
    return msgspec.json.encode(sorted(set(ids))).decode("utf-8")
