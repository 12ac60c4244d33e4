"""
CLOSURE MUTATION LOGGER - The hierarchy flight recorder.

Subscribes to the EventBus and keeps a record of every structural change
(links, closure entries, rebuilds, resets) for debugging and playback.

Architecture:
- MutationLogger: Core logging interface, fed by the event bus
- FileLogger: Daily-rotated JSONL files
- EventBuffer: In-memory ring buffer for recent events

Usage:
    bus = EventBus()
    recorder = MutationLogger(event_bus=bus)
    dag = ClosureDAG(event_bus=bus)

    dag.link(a, b)
    for event in recorder.get_events_for_node(b):
        print(f"{event.sequence}: {event.mutation_type}")
"""
import msgspec
from typing import Optional, List, Callable
from datetime import datetime, timezone
from dataclasses import dataclass
from pathlib import Path
from collections import deque
import threading
import logging
import io

from infrastructure.config import ObservabilityConfig
from infrastructure.event_bus import EventBus, GraphEvent


log = logging.getLogger("closure.logger")


# =============================================================================
# EVENT RECORD
# =============================================================================

class MutationEvent(msgspec.Struct, kw_only=True):
    """
    Flattened record of one hierarchy event.

    Only the fields relevant to the mutation type are set.
    """
    timestamp: str
    sequence: int
    mutation_type: str
    source: str = ""
    scope: Optional[str] = None
    node_id: Optional[str] = None
    parent_id: Optional[str] = None
    child_id: Optional[str] = None
    ancestor_id: Optional[str] = None
    descendant_id: Optional[str] = None
    distance: Optional[int] = None
    count: Optional[int] = None
    node_ids: List[str] = msgspec.field(default_factory=list)

    def touches(self, node_id: str) -> bool:
        """True if node_id appears in any id field of the event."""
        return node_id in (
            self.node_id,
            self.parent_id,
            self.child_id,
            self.ancestor_id,
            self.descendant_id,
        ) or node_id in self.node_ids


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the mutation logger."""
    enable_file_log: bool = False       # Enable file-based logging
    log_path: Optional[Path] = None     # Directory for log files
    buffer_size: int = 10000            # In-memory buffer size

    def __post_init__(self):
        if self.log_path is None:
            self.log_path = Path("./data/logs")
        self.log_path = Path(self.log_path)

    @classmethod
    def from_config(cls, config: ObservabilityConfig) -> "LoggerConfig":
        return cls(
            enable_file_log=config.enable_file_log,
            log_path=Path(config.log_path),
            buffer_size=config.buffer_size,
        )


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent mutation events.

    Provides O(1) append and O(n) query for filtering.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque[MutationEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_since(self, timestamp: str) -> List[MutationEvent]:
        """Get all events since a timestamp."""
        with self._lock:
            return [e for e in self._buffer if e.timestamp >= timestamp]

    def get_last(self, n: int) -> List[MutationEvent]:
        """Get the last n events."""
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if len(items) >= n else items

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.touches(node_id)]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    File-based event logger.

    Writes events as newline-delimited JSON, one file per UTC day.
    """

    def __init__(self, log_path: Path):
        self._log_path = log_path
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        log_path.mkdir(parents=True, exist_ok=True)

    def write(self, event: MutationEvent) -> None:
        """Append an event to today's log file."""
        with self._lock:
            self._ensure_file()
            line = self._encoder.encode(event).decode("utf-8") + "\n"
            self._current_file.write(line)
            self._current_file.flush()

    def _ensure_file(self) -> None:
        """Ensure we have a valid file handle for today."""
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        if self._current_date != today:
            if self._current_file:
                self._current_file.close()

            filepath = self._log_path / f"mutations_{today}.jsonl"
            self._current_file = open(filepath, "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        with self._lock:
            if self._current_file:
                self._current_file.close()
                self._current_file = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Read events from a specific date's log. Malformed lines are skipped."""
        filepath = self._log_path / f"mutations_{date}.jsonl"

        if not filepath.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=MutationEvent)

        with open(filepath, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except msgspec.DecodeError as e:
                    log.warning(f"Skipping malformed line {lineno} in {filepath.name}: {e}")

        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Records hierarchy events to:
    - In-memory buffer (always)
    - File-based logs (configurable)

    Thread-safe for concurrent logging.

    Usage:
        recorder = MutationLogger(LoggerConfig(enable_file_log=True), event_bus=bus)

        recorder.get_recent_events(100)
        recorder.get_events_by_type("closure_inserted")
    """

    def __init__(self, config: Optional[LoggerConfig] = None, event_bus: Optional[EventBus] = None):
        self.config = config or LoggerConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None
        self._event_bus: Optional[EventBus] = None

        if self.config.enable_file_log and self.config.log_path:
            self._file_logger = FileLogger(self.config.log_path)

        self._subscribers: List[Callable[[MutationEvent], None]] = []

        if event_bus is not None:
            self.attach(event_bus)

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _emit(self, event: MutationEvent) -> None:
        """Emit an event to all destinations."""
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                log.error(f"Subscriber error: {e}", exc_info=True)

    # =========================================================================
    # EVENT BUS WIRING
    # =========================================================================

    def attach(self, event_bus: EventBus) -> None:
        """Record every event published on event_bus."""
        self.detach()
        event_bus.subscribe_all(self.record)
        self._event_bus = event_bus

    def detach(self) -> None:
        if self._event_bus is not None:
            self._event_bus.unsubscribe_all(self.record)
            self._event_bus = None

    def record(self, event: GraphEvent) -> MutationEvent:
        """Flatten a GraphEvent into a MutationEvent and log it."""
        payload = event.payload
        count = payload.get("count", payload.get("inserted"))
        mutation = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=event.type.value,
            source=event.source,
            scope=payload.get("scope"),
            node_id=payload.get("node_id"),
            parent_id=payload.get("parent_id"),
            child_id=payload.get("child_id"),
            ancestor_id=payload.get("ancestor_id"),
            descendant_id=payload.get("descendant_id"),
            distance=payload.get("distance"),
            count=count,
            node_ids=list(payload.get("node_ids", [])),
        )
        self._emit(mutation)
        return mutation

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_since(self, timestamp: str) -> List[MutationEvent]:
        return self._buffer.get_since(timestamp)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        """Every buffered event naming node_id in any id field."""
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.get_by_type(str(getattr(mutation_type, "value", mutation_type)))

    def read_log(self, date: Optional[str] = None) -> List[MutationEvent]:
        """Read a day's file log (default: today, UTC)."""
        if self._file_logger is None:
            return []
        date = date or datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self._file_logger.read_log(date)

    def clear(self) -> None:
        self._buffer.clear()

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Detach from the bus and close the file handle."""
        self.detach()
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
