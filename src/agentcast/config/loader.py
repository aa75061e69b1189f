"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Deep merging of user and project files
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from agentcast.config.paths import get_config_paths
from agentcast.config.schema import (
    DEFAULT_HOST,
    DEFAULT_MERGE_WINDOW,
    DEFAULT_PORT,
    Config,
    LoggingConfig,
    ServerConfig,
    ViewerConfig,
)

_log = logging.getLogger("agentcast.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"server", "viewer", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}

    return data if isinstance(data, dict) else {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists and scalars are replaced, and a
    None in ``override`` leaves the base value in place.
    """
    result = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def env_overrides() -> dict[str, Any]:
    """Build a config dict from AGENTCAST_* environment variables."""
    overrides: dict[str, Any] = {}

    port = os.environ.get("AGENTCAST_PORT")
    if port:
        try:
            overrides.setdefault("server", {})["port"] = int(port)
        except ValueError:
            _log.warning("Ignoring non-numeric AGENTCAST_PORT=%r", port)

    host = os.environ.get("AGENTCAST_HOST")
    if host:
        overrides.setdefault("server", {})["host"] = host

    log_path = os.environ.get("AGENTCAST_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    server_data = _section(data, "server")
    server = ServerConfig(
        host=str(server_data.get("host", DEFAULT_HOST)),
        port=int(server_data.get("port", DEFAULT_PORT)),
        static_dir=server_data.get("static_dir"),
    )

    viewer_data = _section(data, "viewer")
    viewer = ViewerConfig(
        merge_window=float(viewer_data.get("merge_window", DEFAULT_MERGE_WINDOW)),
        reconnect_attempts=int(viewer_data.get("reconnect_attempts", 5)),
        reconnect_delay=float(viewer_data.get("reconnect_delay", 2.0)),
    )

    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(server=server, viewer=viewer, logging=logging_config, extra=extra)


def load_config(project_root: str | os.PathLike[str] | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables (AGENTCAST_PORT, AGENTCAST_HOST, AGENTCAST_LOG)
    2. Project config (<project_root>/.agentcast/config.yaml)
    3. User config

    Only the global config (no project_root) is cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    merged = deep_merge(merged, env_overrides())
    config = dict_to_config(merged)

    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (tests, forced reload)."""
    global _cached_config
    _cached_config = None
