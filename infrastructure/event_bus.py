"""
Lightweight event bus for hierarchy change notifications.

The mutator, lifecycle hooks and DAG facade publish structural events here
(link created, closure entry inserted, rebuild started/finished, ...). The
bus is injected and optional: nothing in the closure algorithms depends on
a subscriber being present.

Design Principles:
- Publisher-subscriber pattern (decoupled)
- Handler failures are logged, never propagated into a mutation
- Type-safe events via msgspec

Usage:
    bus = EventBus()
    bus.subscribe(EventType.LINK_CREATED, lambda e: print(e.payload))

    dag = ClosureDAG(event_bus=bus)
"""
from typing import Callable, List, Dict, Any, Optional
from enum import Enum
from collections import defaultdict
import logging
import time

import msgspec


logger = logging.getLogger("closure.event_bus")


class EventType(str, Enum):
    """Types of events published by the hierarchy layer."""
    NODE_SEEDED = "node_seeded"
    NODE_DELETED = "node_deleted"
    LINK_CREATED = "link_created"
    LINK_DELETED = "link_deleted"
    CLOSURE_INSERTED = "closure_inserted"
    CLOSURE_DELETED = "closure_deleted"
    REBUILD_STARTED = "rebuild_started"
    REBUILD_FINISHED = "rebuild_finished"
    HIERARCHY_RESET = "hierarchy_reset"


class GraphEvent(msgspec.Struct, kw_only=True):
    """
    Event emitted when the hierarchy changes.

    Attributes:
        type: Type of event
        payload: Event-specific data (scope, node ids, distance, counts)
        timestamp: Unix timestamp when the event occurred
        source: Component that published ("mutator", "lifecycle", "dag")
    """
    type: EventType
    payload: Dict[str, Any]
    timestamp: float
    source: str


class EventBus:
    """
    Pub/sub bus for hierarchy events.

    Thread Safety:
        Publishing happens on the mutating thread, inside the mutation's
        transaction. Handlers should be quick.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable[[GraphEvent], None]]] = defaultdict(list)
        self._global_subscribers: List[Callable[[GraphEvent], None]] = []

    def subscribe(self, event_type: EventType, handler: Callable[[GraphEvent], None]) -> None:
        """Subscribe a handler to one event type."""
        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            logger.debug(f"Subscribed handler to {event_type.value}")

    def subscribe_all(self, handler: Callable[[GraphEvent], None]) -> None:
        """Subscribe a handler to every event type."""
        if handler not in self._global_subscribers:
            self._global_subscribers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: Callable) -> None:
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    def unsubscribe_all(self, handler: Callable) -> None:
        if handler in self._global_subscribers:
            self._global_subscribers.remove(handler)

    def publish(self, event: GraphEvent) -> None:
        """
        Deliver an event to its subscribers.

        Exceptions in handlers are logged but don't propagate.
        """
        handlers = list(self._subscribers[event.type]) + list(self._global_subscribers)
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in handler for {event.type.value}: {e}",
                    exc_info=True
                )

    def emit(self, event_type: EventType, source: str, **payload: Any) -> GraphEvent:
        """Build and publish an event in one call."""
        event = GraphEvent(
            type=event_type,
            payload=payload,
            timestamp=time.time(),
            source=source,
        )
        self.publish(event)
        return event

    def get_subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        """Number of handlers for one type (plus global handlers), or overall."""
        if event_type is None:
            return sum(len(h) for h in self._subscribers.values()) + len(self._global_subscribers)
        return len(self._subscribers[event_type]) + len(self._global_subscribers)

    def clear(self) -> None:
        """Remove all subscribers (used by tests)."""
        self._subscribers.clear()
        self._global_subscribers.clear()


# =============================================================================
# GLOBAL ACCESS
# =============================================================================

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus, creating it on first use."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide event bus (used by tests)."""
    global _event_bus
    _event_bus = None
