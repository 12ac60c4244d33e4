"""
Unit tests for closure/backend.py - SQLiteBackend

Tests:
- Schema creation
- Transaction commit and rollback
- Savepoint nesting
- File-backed persistence
- Bulk id encoding
"""
import sqlite3

import pytest

from closure.backend import SQLiteBackend, json_ids


@pytest.fixture
def backend():
    backend = SQLiteBackend()
    yield backend
    backend.close()


def _insert_link(backend, child_id, parent_id=None, scope="s"):
    backend.execute(
        "INSERT INTO dag_links (scope, parent_id, child_id) VALUES (?, ?, ?)",
        (scope, parent_id, child_id),
    )


def _link_children(backend):
    return [row[0] for row in backend.query("SELECT child_id FROM dag_links ORDER BY rowid")]


# =============================================================================
# SCHEMA
# =============================================================================

def test_schema_creates_both_tables(backend):
    """
    Validate that a new backend has the link and closure tables.

    Verifies:
    - dag_links and dag_closure exist
    - Both start empty
    """
    rows = backend.query("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
    names = [row[0] for row in rows]

    assert "dag_links" in names
    assert "dag_closure" in names
    assert backend.table_counts() == {"links": 0, "closure": 0}


def test_schema_rejects_self_link(backend):
    with pytest.raises(sqlite3.IntegrityError):
        _insert_link(backend, "a", parent_id="a")


def test_schema_rejects_negative_distance(backend):
    with pytest.raises(sqlite3.IntegrityError):
        backend.execute(
            "INSERT INTO dag_closure (scope, ancestor_id, descendant_id, distance) VALUES (?, ?, ?, ?)",
            ("s", "a", "b", -1),
        )


def test_memory_is_default():
    backend = SQLiteBackend()
    assert backend.db_path == SQLiteBackend.MEMORY
    assert ":memory:" in repr(backend)
    backend.close()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def test_transaction_commits(backend):
    with backend.transaction():
        assert backend.in_transaction
        _insert_link(backend, "a")

    assert not backend.in_transaction
    assert _link_children(backend) == ["a"]


def test_transaction_rolls_back_on_error(backend):
    """
    Validate that an exception inside transaction() undoes its writes.

    Verifies:
    - The exception propagates
    - No row written in the block survives
    - The backend is usable afterwards
    """
    with pytest.raises(RuntimeError):
        with backend.transaction():
            _insert_link(backend, "a")
            raise RuntimeError("boom")

    assert _link_children(backend) == []
    assert not backend.in_transaction

    _insert_link(backend, "b")
    assert _link_children(backend) == ["b"]


def test_nested_failure_only_rolls_back_savepoint(backend):
    """
    Validate that a failing nested transaction keeps the outer work.

    Verifies:
    - Inner writes are undone
    - Outer writes before and after the inner block commit
    """
    with backend.transaction():
        _insert_link(backend, "outer_1")
        with pytest.raises(ValueError):
            with backend.transaction():
                _insert_link(backend, "inner")
                raise ValueError("inner failure")
        _insert_link(backend, "outer_2")

    assert _link_children(backend) == ["outer_1", "outer_2"]


def test_outer_failure_discards_released_savepoint(backend):
    with pytest.raises(RuntimeError):
        with backend.transaction():
            with backend.transaction():
                _insert_link(backend, "inner")
            raise RuntimeError("outer failure")

    assert _link_children(backend) == []


# =============================================================================
# INTROSPECTION & PERSISTENCE
# =============================================================================

def test_scopes_and_counts(backend):
    _insert_link(backend, "a", scope="one")
    _insert_link(backend, "b", scope="two")
    backend.execute(
        "INSERT INTO dag_closure (scope, ancestor_id, descendant_id, distance) VALUES ('two', 'b', 'b', 0)"
    )

    assert backend.scopes() == ["one", "two"]
    assert backend.table_counts("one") == {"links": 1, "closure": 0}
    assert backend.table_counts("two") == {"links": 1, "closure": 1}
    assert backend.table_counts() == {"links": 2, "closure": 1}


def test_file_backend_persists(temp_dir):
    db_path = temp_dir / "nested" / "closure.db"

    backend = SQLiteBackend(db_path)
    with backend.transaction():
        _insert_link(backend, "a")
    backend.close()

    assert db_path.exists()
    reopened = SQLiteBackend(db_path)
    assert _link_children(reopened) == ["a"]
    reopened.close()


def test_json_ids_sorted_and_unique():
    assert json_ids(["b", "a", "b"]) == '["a","b"]'
    assert json_ids([]) == "[]"


def test_json_ids_drive_bulk_predicates(backend):
    for child in ("a", "b", "c"):
        _insert_link(backend, child)

    rows = backend.query(
        "SELECT child_id FROM dag_links WHERE child_id IN (SELECT value FROM json_each(?)) ORDER BY child_id",
        (json_ids({"a", "c", "zzz"}),),
    )

    assert [row[0] for row in rows] == ["a", "c"]
