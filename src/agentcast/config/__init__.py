"""Configuration management for agentcast.

YAML files (user, then project) are deep-merged and then overridden by
AGENTCAST_* environment variables.

Example usage:
    from agentcast.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.server.port)
"""

from agentcast.config.loader import (
    deep_merge,
    get_config,
    load_config,
    reset_config,
)
from agentcast.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_user_config_path,
)
from agentcast.config.schema import (
    Config,
    LoggingConfig,
    ServerConfig,
    ViewerConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "deep_merge",
    "LoggingConfig",
    "ServerConfig",
    "ViewerConfig",
    "get_config_paths",
    "get_user_config_path",
    "get_project_config_path",
]
