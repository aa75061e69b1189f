"""Logging setup for the hub, the viewer client and the CLI.

Every module logs through a child of the ``agentcast`` logger
(``agentcast.hub.hub``, ``agentcast.hub.registry``, ``agentcast.viewer.client``
and so on), so one call to ``setup_logging`` routes all of them. What ends up
where:

- debug: viewer attach/detach, pruned connections, dropped duplicate or late
  confirmation answers, stale pending tool groups
- info: server start and stop, client connects and reconnects
- warning: port fallback, malformed frames, a client giving up
- error: session handler failures, with traceback

The hub is embedded in a host process that normally owns the terminal, so
output goes to the file from ``logging.file`` or ``AGENTCAST_LOG`` and only
reaches stderr when it is a real console or the CLI asks for it.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentcast.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("agentcast")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Emits ``12:00:01 warning: ...`` style lines."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Pick the effective level for the ``agentcast`` logger.

    ``verbose`` (0 to 4, as set by repeated ``-v`` style config) wins over the
    named ``level``. Unknown names fall back to INFO so a typo in config.yaml
    never silences pruning or handler errors.
    """
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY_MAP.get(config.verbose, TRACE)
    if config.level:
        return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None, force_stderr: bool = False) -> None:
    """Attach handlers to the ``agentcast`` logger once per process.

    Host applications embedding a hub call this with their loaded config;
    ``agentcast serve`` and ``agentcast watch`` pass ``force_stderr=True``
    because they own the terminal. Later calls are no-ops.

    Args:
        config: LoggingConfig with level, verbose and file settings.
        force_stderr: Log to stderr even when it is not a TTY.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = resolve_level(config)
    logger.setLevel(log_level)

    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = config.file if config and config.file else os.environ.get("AGENTCAST_LOG")

    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as e:
            if force_stderr or sys.stderr.isatty():
                print(f"[agentcast] Failed to open log file: {e}", file=sys.stderr)
                _add_stderr_handler(formatter, log_level)
            return
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    elif force_stderr or sys.stderr.isatty():
        _add_stderr_handler(formatter, log_level)


def _add_stderr_handler(formatter: logging.Formatter, level: int = logging.DEBUG) -> None:
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """The ``agentcast`` logger, or its child ``name`` (``get_logger("viewer")``)."""
    if name:
        return logger.getChild(name)
    return logger
