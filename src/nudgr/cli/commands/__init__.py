"""CLI command modules."""

from nudgr.cli.commands import config, database, nudge, serve

__all__ = [
    "config",
    "database",
    "nudge",
    "serve",
]
