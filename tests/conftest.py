"""
Pytest configuration and shared fixtures for the closure-dag test suite.
"""
import sys
import shutil
import tempfile
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


SCOPE = "category"


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the process-wide event bus before and after each test."""
    from infrastructure.event_bus import reset_event_bus

    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def temp_dir():
    """Create a temporary directory, removed after the test."""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fresh_dag():
    """Provide an empty in-memory ClosureDAG."""
    from closure.dag import ClosureDAG
    dag = ClosureDAG()
    yield dag
    dag.backend.close()


@pytest.fixture
def bus():
    """Provide a private EventBus."""
    from infrastructure.event_bus import EventBus
    return EventBus()


@pytest.fixture
def observed_dag(bus):
    """Provide a ClosureDAG wired to an event bus plus a recorder on it."""
    from closure.dag import ClosureDAG
    from infrastructure.logger import MutationLogger

    dag = ClosureDAG(event_bus=bus)
    recorder = MutationLogger(event_bus=bus)
    yield dag, recorder
    recorder.close()
    dag.backend.close()


def build(dag, edges, nodes=(), scope=SCOPE):
    """
    Add every node named in nodes/edges (ids equal names), then link edges
    in order.
    """
    names = list(nodes)
    for parent, child in edges:
        for name in (parent, child):
            if name not in names:
                names.append(name)
    for name in names:
        if not dag.has_node(name):
            dag.add_node(scope, name=name, id=name)
    for parent, child in edges:
        dag.link(parent, child)
    return dag


def triples(dag, scope=SCOPE):
    """The stored closure of a scope as a set of (ancestor, descendant, distance)."""
    return {entry.as_triple() for entry in dag.closure.all_entries(scope)}


def snapshot(dag, scope=SCOPE):
    """Links and closure of a scope, for before/after comparisons."""
    links = [(l.parent_id, l.child_id) for l in dag.links.all_links(scope)]
    return sorted(links, key=lambda pair: (pair[0] or "", pair[1])), triples(dag, scope)


@pytest.fixture
def diamond(fresh_dag):
    """
    A -> B, A -> C, B -> D, C -> D

        A
       / \\
      B   C
       \\ /
        D
    """
    return build(fresh_dag, [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")])


@pytest.fixture
def chain(fresh_dag):
    """A -> B -> C -> D"""
    return build(fresh_dag, [("A", "B"), ("B", "C"), ("C", "D")])
