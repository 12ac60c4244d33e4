"""
End-to-end hierarchy scenarios through the ClosureDAG facade.

Tests:
- Diamond construction and teardown
- Unlink with rebuild and root promotion
- Reset of a whole scope
- Atomicity of failed mutations
- Concurrent writers on one backend
"""
import threading

import pytest

from closure.dag import ClosureDAG
from closure.errors import NodeNotFoundError

from conftest import SCOPE, build, snapshot, triples


SELF = {(n, n, 0) for n in "ABCD"}


def test_diamond_scenario(fresh_dag):
    """
    Validate the diamond end to end.

    Verifies:
    - (A, D) is witnessed once at distance 2
    - Queries agree with the closure
    - Removing both of D's parents re-roots D
    """
    build(fresh_dag, [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")])

    assert triples(fresh_dag) == SELF | {
        ("A", "B", 1), ("A", "C", 1), ("B", "D", 1), ("C", "D", 1), ("A", "D", 2),
    }
    assert [(r.node_id, r.distance) for r in fresh_dag.ancestors("D")] == [("A", 2), ("B", 1), ("C", 1)]

    fresh_dag.unlink("B", "D")
    assert ("A", "D", 2) in triples(fresh_dag)

    fresh_dag.unlink("C", "D")
    assert fresh_dag.ancestors("D") == []
    assert fresh_dag.roots(SCOPE) == ["A", "D"]
    assert fresh_dag.verify(SCOPE).valid


def test_link_then_unlink_restores_previous_state(diamond):
    before = triples(diamond)
    diamond.add_node(SCOPE, id="E")

    diamond.link("D", "E")
    diamond.link("B", "E")
    diamond.unlink("B", "E")
    diamond.unlink("D", "E")

    assert triples(diamond) == before | {("E", "E", 0)}
    assert diamond.roots(SCOPE) == ["A", "E"]


def test_relinking_after_root_promotion(chain):
    chain.unlink("B", "C")
    assert chain.roots(SCOPE) == ["A", "C"]

    chain.link("A", "C")

    assert chain.roots(SCOPE) == ["A"]
    assert chain.parents("C") == ["A"]
    assert ("A", "D", 2) in triples(chain)
    assert ("A", "D", 3) not in triples(chain)
    assert chain.verify(SCOPE).valid


def test_reset_then_rebuild_hierarchy(diamond):
    diamond.reset_hierarchy(SCOPE)
    assert triples(diamond) == SELF

    for parent, child in [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]:
        diamond.link(parent, child)

    assert diamond.verify(SCOPE).valid
    assert diamond.closure_count == 9


def test_scopes_are_independent(fresh_dag):
    build(fresh_dag, [("A", "B")], scope="category")
    build(fresh_dag, [("X", "Y")], scope="tag")

    fresh_dag.reset_hierarchy("tag")

    assert fresh_dag.is_parent_of("A", "B")
    assert not fresh_dag.is_parent_of("X", "Y")
    assert fresh_dag.verify("category").valid
    assert fresh_dag.verify("tag").valid


# =============================================================================
# ATOMICITY
# =============================================================================

def test_failed_link_leaves_stores_untouched(chain, monkeypatch):
    """
    Validate that a failure halfway through a link rolls back everything.

    Verifies:
    - The new link row is gone
    - The child's root marker is back
    - No partial closure entries remain
    """
    chain.add_node(SCOPE, id="E")
    before = snapshot(chain)

    original = chain.closure.insert_if_absent
    calls = {"n": 0}

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("disk full")
        return original(*args, **kwargs)

    monkeypatch.setattr(chain.closure, "insert_if_absent", flaky)

    with pytest.raises(RuntimeError):
        chain.link("D", "E")

    assert snapshot(chain) == before
    assert chain.links.has_root_marker(SCOPE, "E")
    assert not chain.backend.in_transaction


def test_failed_unlink_leaves_stores_untouched(diamond, monkeypatch):
    before = snapshot(diamond)

    def broken_rebuild(scope, node_id, ancestor_path=()):
        raise RuntimeError("rebuild interrupted")

    monkeypatch.setattr(diamond.mutator, "rebuild", broken_rebuild)

    with pytest.raises(RuntimeError):
        diamond.unlink("B", "D")

    assert snapshot(diamond) == before


def test_failed_remove_node_keeps_node(diamond):
    with pytest.raises(NodeNotFoundError):
        diamond.remove_node("ghost")

    assert diamond.node_count == 4
    assert diamond.verify(SCOPE).valid


# =============================================================================
# CONCURRENCY
# =============================================================================

def test_concurrent_writers_keep_closure_consistent():
    """
    Validate single-writer serialization across threads.

    Each thread builds its own chain under a shared root; the final
    closure must match the recomputation.
    """
    dag = ClosureDAG()
    dag.add_node(SCOPE, id="root")
    chains = {
        t: [f"t{t}_{i}" for i in range(8)]
        for t in range(4)
    }
    for names in chains.values():
        for name in names:
            dag.add_node(SCOPE, id=name)

    errors = []

    def worker(names):
        try:
            dag.link("root", names[0])
            for parent, child in zip(names, names[1:]):
                dag.link(parent, child)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(names,)) for names in chains.values()]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert dag.roots(SCOPE) == ["root"]
    assert dag.verify(SCOPE).valid
    assert len(dag.descendants("root")) == 32
    dag.backend.close()
