"""Configuration schema dataclasses for agentcast.

All fields have defaults so partial YAML files merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_PORT = 8629
DEFAULT_HOST = "127.0.0.1"
DEFAULT_MERGE_WINDOW = 10.0


@dataclass
class ServerConfig:
    """Hub HTTP/WebSocket server settings.

    Example config.yaml:
        server:
          host: 127.0.0.1
          port: 8629
          static_dir: ~/src/viewer/dist
    """

    host: str = DEFAULT_HOST  # Loopback only unless overridden
    port: int = DEFAULT_PORT  # Falls back to an ephemeral port when taken
    static_dir: str | None = None  # Viewer bundle; packaged default when unset


@dataclass
class ViewerConfig:
    """Viewer-side reconciliation and reconnect settings."""

    merge_window: float = DEFAULT_MERGE_WINDOW  # Seconds
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0  # Seconds between attempts


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are preserved for host applications
    extra: dict[str, Any] = field(default_factory=dict)
