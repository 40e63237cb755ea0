"""Configuration module."""

from nudgr.config.loader import get_default_config, load_config
from nudgr.config.models import (
    ConfigError,
    DatabaseConfig,
    EngineConfig,
    FeedConfig,
    ModelConfig,
    NudgrConfig,
    ProviderConfig,
    WatcherConfig,
)
from nudgr.config.paths import (
    get_config_path,
    get_database_path,
    get_logs_path,
    get_nudgr_home,
)

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "EngineConfig",
    "FeedConfig",
    "ModelConfig",
    "NudgrConfig",
    "ProviderConfig",
    "WatcherConfig",
    "get_config_path",
    "get_database_path",
    "get_default_config",
    "get_logs_path",
    "get_nudgr_home",
    "load_config",
]
