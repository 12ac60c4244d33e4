"""
CLOSURE INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: TOML configuration loading into msgspec structs
- event_bus: Pub/sub for hierarchy change events
- logger: Mutation event recording (ring buffer + JSONL files)
"""

from infrastructure.config import ClosureConfig, configure_logging, load_config
from infrastructure.event_bus import (
    EventBus,
    EventType,
    GraphEvent,
    get_event_bus,
    reset_event_bus,
)
from infrastructure.logger import LoggerConfig, MutationEvent, MutationLogger

__all__ = [
    "ClosureConfig",
    "configure_logging",
    "load_config",
    "EventBus",
    "EventType",
    "GraphEvent",
    "get_event_bus",
    "reset_event_bus",
    "LoggerConfig",
    "MutationEvent",
    "MutationLogger",
]
