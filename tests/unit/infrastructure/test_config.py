"""
Unit tests for infrastructure/config.py
"""
import logging

import pytest

from infrastructure.config import (
    DEFAULT_CONFIG_PATH,
    ClosureConfig,
    configure_logging,
    load_config,
)


def test_defaults():
    config = ClosureConfig()

    assert config.store.path == ":memory:"
    assert config.logging.level == "INFO"
    assert config.observability.enable_file_log is False
    assert config.observability.buffer_size == 10000


def test_bundled_config_loads():
    assert DEFAULT_CONFIG_PATH.exists()

    config = load_config()

    assert config.store.path.endswith("closure.db")
    assert config.logging.level == "INFO"


def test_load_partial_file(temp_dir):
    path = temp_dir / "closure.toml"
    path.write_text(
        '[store]\npath = "graph.db"\n\n[observability]\nbuffer_size = 50\nunknown = 1\n',
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.store.path == "graph.db"
    assert config.observability.buffer_size == 50
    assert config.observability.log_path == "./data/logs"
    assert config.logging.level == "INFO"


def test_missing_file_warns_and_defaults(temp_dir):
    with pytest.warns(UserWarning, match="Failed to load config"):
        config = load_config(temp_dir / "absent.toml")

    assert config == ClosureConfig()


def test_invalid_value_warns_and_defaults(temp_dir):
    path = temp_dir / "closure.toml"
    path.write_text('[observability]\nbuffer_size = "large"\n', encoding="utf-8")

    with pytest.warns(UserWarning, match="Invalid closure config"):
        config = load_config(path)

    assert config.observability.buffer_size == 10000


def test_configure_logging_sets_package_level():
    root_logger = logging.getLogger("closure")
    previous = root_logger.level
    try:
        config = ClosureConfig()
        config.logging.level = "debug"
        configure_logging(config)

        assert root_logger.level == logging.DEBUG
        assert logging.getLogger("closure.mutator").getEffectiveLevel() == logging.DEBUG
    finally:
        root_logger.setLevel(previous)
