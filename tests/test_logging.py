"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

import agentcast.logging as agentcast_logging
from agentcast.config.schema import LoggingConfig
from agentcast.logging import TRACE, VERBOSE, get_logger, resolve_level, setup_logging


@pytest.fixture
def fresh_logger(monkeypatch: pytest.MonkeyPatch):
    """Let setup_logging run again and drop any handlers it adds."""
    monkeypatch.setattr(agentcast_logging, "_initialized", False)
    logger = logging.getLogger("agentcast")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestResolveLevel:
    """Tests for level selection."""

    def test_default_info(self) -> None:
        """No config means INFO."""
        assert resolve_level(None) == logging.INFO
        assert resolve_level(LoggingConfig()) == logging.INFO

    def test_named_level(self) -> None:
        """Level names are case-insensitive."""
        assert resolve_level(LoggingConfig(level="debug")) == logging.DEBUG
        assert resolve_level(LoggingConfig(level="bogus")) == logging.INFO

    def test_verbose_wins(self) -> None:
        """verbose overrides level."""
        assert resolve_level(LoggingConfig(level="ERROR", verbose=3)) == VERBOSE
        assert resolve_level(LoggingConfig(verbose=4)) == TRACE
        assert resolve_level(LoggingConfig(verbose=0)) == logging.ERROR


class TestSetupLogging:
    """Tests for handler installation."""

    def test_file_handler(self, fresh_logger: logging.Logger, tmp_path: Path) -> None:
        """A configured file receives log records with lowercase levels."""
        log_file = tmp_path / "hub.log"
        setup_logging(LoggingConfig(level="INFO", file=str(log_file)))
        get_logger("hub").warning("viewer pruned")
        for handler in fresh_logger.handlers:
            handler.flush()
        assert "warning: viewer pruned" in log_file.read_text()

    def test_runs_once(self, fresh_logger: logging.Logger, tmp_path: Path) -> None:
        """A second call adds no handlers."""
        setup_logging(LoggingConfig(file=str(tmp_path / "a.log")))
        count = len(fresh_logger.handlers)
        setup_logging(LoggingConfig(file=str(tmp_path / "b.log")))
        assert len(fresh_logger.handlers) == count

    def test_get_logger_child(self) -> None:
        """Named loggers live under the agentcast namespace."""
        assert get_logger("viewer").name == "agentcast.viewer"
        assert get_logger().name == "agentcast"
