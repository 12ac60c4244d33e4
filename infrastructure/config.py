"""
CLOSURE CONFIG - TOML-driven settings for the hierarchy engine.

Reads config/closure.toml:

    [store]
    path = ":memory:"

    [logging]
    level = "INFO"

    [observability]
    enable_file_log = false
    log_path = "./data/logs"
    buffer_size = 10000

Missing sections or keys fall back to the defaults below. An unreadable
file warns and yields the defaults.
"""
import logging
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import msgspec


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "closure.toml"


# =============================================================================
# CONFIG STRUCTS
# =============================================================================

class StoreConfig(msgspec.Struct, kw_only=True):
    path: str = ":memory:"


class LoggingConfig(msgspec.Struct, kw_only=True):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ObservabilityConfig(msgspec.Struct, kw_only=True):
    enable_file_log: bool = False
    log_path: str = "./data/logs"
    buffer_size: int = 10000


class ClosureConfig(msgspec.Struct, kw_only=True):
    """All settings, one struct per TOML section."""
    store: StoreConfig = msgspec.field(default_factory=StoreConfig)
    logging: LoggingConfig = msgspec.field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = msgspec.field(default_factory=ObservabilityConfig)


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw TOML document.

    Returns:
        Dict with all configuration sections (empty on failure)
    """
    try:
        import tomllib
        config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        warnings.warn(f"Failed to load config from TOML, using defaults: {e}")
        return {}


def load_config(path: Optional[Path] = None) -> ClosureConfig:
    """
    Load config/closure.toml (or `path`) into a ClosureConfig.

    Unknown keys are ignored. Values of the wrong type warn and fall back
    to the defaults.
    """
    raw = load_toml_config(path)
    try:
        return msgspec.convert(raw, type=ClosureConfig)
    except msgspec.ValidationError as e:
        warnings.warn(f"Invalid closure config, using defaults: {e}")
        return ClosureConfig()


def configure_logging(config: Optional[ClosureConfig] = None) -> None:
    """Apply the [logging] section to the closure.* loggers."""
    config = config or ClosureConfig()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(format=config.logging.format)
    logging.getLogger("closure").setLevel(level)
