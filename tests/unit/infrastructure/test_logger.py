"""
Unit tests for infrastructure/logger.py - MutationLogger

Tests:
- Recording bus events into the ring buffer
- Node/type queries
- JSONL file logging and read-back
"""
from datetime import datetime, timezone

from infrastructure.event_bus import EventType
from infrastructure.logger import (
    EventBuffer,
    LoggerConfig,
    MutationEvent,
    MutationLogger,
)
from infrastructure.config import ObservabilityConfig

from conftest import SCOPE, build


def _event(seq, mutation_type="link_created", **fields):
    return MutationEvent(
        timestamp=f"2026-01-01T00:00:{seq:02d}+00:00",
        sequence=seq,
        mutation_type=mutation_type,
        **fields,
    )


def test_event_buffer_is_bounded():
    buffer = EventBuffer(max_size=3)
    for seq in range(5):
        buffer.append(_event(seq))

    assert len(buffer) == 3
    assert [e.sequence for e in buffer.get_last(10)] == [2, 3, 4]
    assert [e.sequence for e in buffer.get_last(2)] == [3, 4]


def test_event_buffer_filters():
    buffer = EventBuffer()
    buffer.append(_event(1, parent_id="a", child_id="b"))
    buffer.append(_event(2, mutation_type="closure_inserted", ancestor_id="a", descendant_id="c"))
    buffer.append(_event(3, mutation_type="hierarchy_reset", node_ids=["b", "c"]))

    assert [e.sequence for e in buffer.get_by_node("c")] == [2, 3]
    assert [e.sequence for e in buffer.get_by_type("closure_inserted")] == [2]
    assert [e.sequence for e in buffer.get_since("2026-01-01T00:00:02+00:00")] == [2, 3]


def test_logger_records_dag_events(observed_dag):
    """
    Validate that a bus-attached logger sees closure maintenance.

    Verifies:
    - Node seeding is recorded per node
    - Events for a node include links and closure rows naming it
    - Sequence numbers increase
    """
    dag, recorder = observed_dag
    build(dag, [("A", "B")])

    seeded = recorder.get_events_by_type(EventType.NODE_SEEDED)
    assert [e.node_id for e in seeded] == ["A", "B"]

    for_b = recorder.get_events_for_node("B")
    assert {e.mutation_type for e in for_b} >= {
        EventType.NODE_SEEDED.value,
        EventType.LINK_CREATED.value,
        EventType.CLOSURE_INSERTED.value,
    }
    assert all(e.scope == SCOPE for e in for_b)

    sequences = [e.sequence for e in recorder.get_recent_events()]
    assert sequences == sorted(sequences)


def test_detach_stops_recording(observed_dag):
    dag, recorder = observed_dag
    recorder.detach()

    dag.add_node(SCOPE, id="A")

    assert recorder.get_recent_events() == []


def test_logger_subscribers(bus):
    seen = []
    recorder = MutationLogger(event_bus=bus)
    recorder.subscribe(seen.append)

    bus.emit(EventType.NODE_DELETED, source="test", scope=SCOPE, node_id="A")
    recorder.unsubscribe(seen.append)
    bus.emit(EventType.NODE_DELETED, source="test", scope=SCOPE, node_id="B")

    assert [e.node_id for e in seen] == ["A"]
    recorder.close()


def test_file_log_round_trip(bus, temp_dir):
    """
    Validate daily JSONL logging.

    Verifies:
    - Events are written to mutations_<date>.jsonl
    - read_log decodes them back in order
    """
    config = LoggerConfig(enable_file_log=True, log_path=temp_dir / "logs")
    with MutationLogger(config, event_bus=bus) as recorder:
        bus.emit(EventType.LINK_CREATED, source="test", scope=SCOPE, parent_id="A", child_id="B")
        bus.emit(EventType.REBUILD_FINISHED, source="test", scope=SCOPE, node_id="A", inserted=3)

        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        assert (temp_dir / "logs" / f"mutations_{today}.jsonl").exists()

        events = recorder.read_log()

    assert [e.mutation_type for e in events] == ["link_created", "rebuild_finished"]
    assert events[0].parent_id == "A"
    assert events[1].count == 3


def test_read_log_skips_malformed_lines(bus, temp_dir):
    config = LoggerConfig(enable_file_log=True, log_path=temp_dir)
    recorder = MutationLogger(config, event_bus=bus)
    bus.emit(EventType.NODE_SEEDED, source="test", scope=SCOPE, node_id="A")
    recorder.close()

    log_file = next(temp_dir.glob("mutations_*.jsonl"))
    with open(log_file, "a", encoding="utf-8") as f:
        f.write("not json\n")

    date = log_file.stem.replace("mutations_", "")
    reopened = MutationLogger(config)
    assert [e.node_id for e in reopened.read_log(date)] == ["A"]
    assert reopened.read_log("1999-01-01") == []
    reopened.close()


def test_read_log_without_file_logger(bus):
    recorder = MutationLogger(event_bus=bus)

    assert recorder.read_log() == []
    recorder.close()


def test_logger_config_from_observability():
    config = LoggerConfig.from_config(
        ObservabilityConfig(enable_file_log=True, log_path="/tmp/closure-logs", buffer_size=5)
    )

    assert config.enable_file_log
    assert str(config.log_path) == "/tmp/closure-logs"
    assert config.buffer_size == 5
