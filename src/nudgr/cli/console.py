"""Shared console utilities for CLI commands."""

from __future__ import annotations

from datetime import UTC, datetime

import typer
from rich.console import Console
from rich.table import Table

# Shared console instance for all CLI commands
console = Console()


def error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{msg}[/red]")


def warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]{msg}[/yellow]")


def success(msg: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{msg}[/green]")


def dim(msg: str) -> None:
    """Print a dimmed message."""
    console.print(f"[dim]{msg}[/dim]")


def create_table(
    title: str | None,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Create a styled table with consistent formatting.

    Args:
        title: Table title.
        columns: List of (name, style) or (name, kwargs_dict) tuples.
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def confirm_or_cancel(prompt: str, force: bool) -> bool:
    """Return True if the user confirms (or force is set). Print cancel on decline."""
    if force:
        return True
    confirmed = typer.confirm(prompt)
    if not confirmed:
        dim("Cancelled")
    return confirmed


def format_relative(when: datetime, now: datetime | None = None) -> str:
    """Format a time relative to now, e.g. 'in 5m' or '2h ago'."""
    now = now or datetime.now(UTC)
    total_seconds = int((when - now).total_seconds())
    suffix = ""
    prefix = "in "
    if total_seconds < 0:
        total_seconds = -total_seconds
        prefix, suffix = "", " ago"

    if total_seconds < 60:
        amount = f"{total_seconds}s"
    elif total_seconds < 3600:
        amount = f"{total_seconds // 60}m"
    elif total_seconds < 86400:
        hours, rest = divmod(total_seconds, 3600)
        minutes = rest // 60
        amount = f"{hours}h {minutes}m" if minutes else f"{hours}h"
    else:
        days, rest = divmod(total_seconds, 86400)
        hours = rest // 3600
        amount = f"{days}d {hours}h" if hours else f"{days}d"
    return f"{prefix}{amount}{suffix}"
