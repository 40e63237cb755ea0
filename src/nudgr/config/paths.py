"""Centralized path management for Nudgr.

All local state (config, database, logs) lives under a single base directory.
The base directory can be overridden with the NUDGR_HOME environment variable.

Default locations:
- Linux/macOS: ~/.nudgr
- Windows: %USERPROFILE%\\.nudgr
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "NUDGR_HOME"


@lru_cache(maxsize=1)
def get_nudgr_home() -> Path:
    """Get the base directory for all Nudgr data.

    Resolution order:
    1. NUDGR_HOME environment variable (if set)
    2. Platform default (~/.nudgr)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".nudgr"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_nudgr_home() / "config.toml"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_nudgr_home() / "data" / "nudgr.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_nudgr_home() / "logs"

