"""Nudge management commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated

import typer

from nudgr.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    format_relative,
    success,
    warning,
)
from nudgr.cli.runtime import Runtime, open_runtime, resolve_config
from nudgr.nudges import (
    NudgeContext,
    NudgeError,
    NudgeRecord,
    NudgeStatus,
    TriggeredNudge,
)
from nudgr.nudges.types import as_utc

ACTIONS = (
    "schedule",
    "cancel",
    "trigger",
    "get",
    "list",
    "ready",
    "feed",
    "clear",
    "stats",
)


def register(app: typer.Typer) -> None:
    """Register the nudge command."""

    @app.command()
    def nudge(
        ctx: typer.Context,
        action: Annotated[
            str | None,
            typer.Argument(help=f"Action: {', '.join(ACTIONS)}"),
        ] = None,
        user: Annotated[
            str | None,
            typer.Option("--user", "-u", help="User ID"),
        ] = None,
        task: Annotated[
            str | None,
            typer.Option("--task", "-t", help="Task ID"),
        ] = None,
        at: Annotated[
            str | None,
            typer.Option("--at", help="Delivery time (ISO 8601, UTC if no offset)"),
        ] = None,
        in_minutes: Annotated[
            float | None,
            typer.Option("--in", help="Delivery time as minutes from now"),
        ] = None,
        override: Annotated[
            bool,
            typer.Option("--override", help="Cancel even if already triggered"),
        ] = False,
        title: Annotated[
            str | None,
            typer.Option("--title", help="Task title for message generation"),
        ] = None,
        description: Annotated[
            str,
            typer.Option("--description", help="Task description"),
        ] = "",
        emotions: Annotated[
            list[str] | None,
            typer.Option("--emotion", "-e", help="Recent emotion (repeatable)"),
        ] = None,
        status: Annotated[
            NudgeStatus,
            typer.Option("--status", "-s", help="Filter for list"),
        ] = NudgeStatus.ANY,
        since: Annotated[
            str | None,
            typer.Option("--since", help="Lower bound (ISO 8601) for ready/feed"),
        ] = None,
        limit: Annotated[
            int | None,
            typer.Option("--limit", "-n", help="Maximum results"),
        ] = None,
        follow: Annotated[
            bool,
            typer.Option("--follow", help="Keep streaming new nudges (feed)"),
        ] = False,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Skip confirmation"),
        ] = False,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Schedule, cancel, trigger and inspect nudges.

        Examples:
            nudgr nudge schedule -u alice -t essay --in 30
            nudgr nudge list -u alice --status pending
            nudgr nudge trigger -u alice -t essay --title "Write essay" -e anxious
            nudgr nudge feed -u alice --since 2025-01-01T00:00:00Z
            nudgr nudge feed -u alice --follow
            nudgr nudge stats
        """
        if action is None:
            typer.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print(f"Valid actions: {', '.join(ACTIONS)}")
            raise typer.Exit(1)

        if action != "stats" and user is None:
            error(f"--user is required for {action}")
            raise typer.Exit(1)
        if action in ("schedule", "cancel", "trigger", "get") and task is None:
            error(f"--task is required for {action}")
            raise typer.Exit(1)

        if action == "schedule":
            if (at is None) == (in_minutes is None):
                error("Exactly one of --at or --in is required for schedule")
                raise typer.Exit(1)
            delivery_time = (
                _parse_time(at, "--at")
                if at is not None
                else datetime.now().astimezone() + timedelta(minutes=in_minutes or 0)
            )
            handler = _schedule(user, task, delivery_time)
        elif action == "cancel":
            handler = _cancel(user, task, override)
        elif action == "trigger":
            context = NudgeContext(
                title=title or task,
                description=description,
                recent_emotions=tuple(emotions or ()),
            )
            handler = _trigger(user, task, context)
        elif action == "get":
            handler = _get(user, task)
        elif action == "list":
            handler = _list(user, status, limit)
        elif action == "ready":
            handler = _ready(
                user, _parse_time(since, "--since") if since is not None else None
            )
        elif action == "feed":
            handler = _feed(
                user,
                _parse_time(since, "--since") if since is not None else None,
                follow,
            )
        elif action == "clear":
            if not confirm_or_cancel(f"Delete all nudges for user {user}?", force):
                return
            handler = _clear(user)
        else:
            handler = _stats

        _run(config_path, handler)


Handler = Callable[[Runtime], Awaitable[None]]


def _run(config_path: Path | None, handler: Handler) -> None:
    try:
        config = resolve_config(config_path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None

    async def run() -> None:
        async with open_runtime(config) as runtime:
            await handler(runtime)

    try:
        asyncio.run(run())
    except (NudgeError, ValueError) as e:
        error(str(e))
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        dim("Stopped")


def _parse_time(value: str, option: str) -> datetime:
    try:
        # fromisoformat accepts a trailing Z from 3.11
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        error(f"Invalid time for {option}: {value}")
        raise typer.Exit(1) from None


def _schedule(user_id: str, task_id: str, delivery_time: datetime) -> Handler:
    async def handler(runtime: Runtime) -> None:
        engine = runtime.engine()
        nudge = await engine.schedule(user_id, task_id, delivery_time)
        success(
            f"Scheduled nudge for task {task_id} at {_when(nudge.delivery_time)}"
        )

    return handler


def _cancel(user_id: str, task_id: str, override: bool) -> Handler:
    async def handler(runtime: Runtime) -> None:
        engine = runtime.engine()
        await engine.cancel(user_id, task_id, override=override)
        success(f"Canceled nudge for task {task_id}")

    return handler


def _trigger(user_id: str, task_id: str, context: NudgeContext) -> Handler:
    async def handler(runtime: Runtime) -> None:
        nudge = await runtime.engine().trigger(user_id, task_id, context)
        success(f"Triggered nudge for task {task_id}")
        console.print(nudge.message)

    return handler


def _get(user_id: str, task_id: str) -> Handler:
    async def handler(runtime: Runtime) -> None:
        _print_nudges([await runtime.queries.get(user_id, task_id)])

    return handler


def _list(user_id: str, status: NudgeStatus, limit: int | None) -> Handler:
    async def handler(runtime: Runtime) -> None:
        nudges = await runtime.queries.list_for_user(user_id, status, limit)
        if not nudges:
            warning(f"No nudges found for user {user_id}")
            return
        _print_nudges(nudges)

    return handler


def _ready(user_id: str, since: datetime | None) -> Handler:
    async def handler(runtime: Runtime) -> None:
        if since is None:
            nudges = await runtime.queries.ready_for_user(user_id)
        else:
            nudges = await runtime.queries.ready_since(user_id, since)
        if not nudges:
            warning(f"No ready nudges for user {user_id}")
            return
        _print_nudges(nudges)

    return handler


def _feed(user_id: str, after: datetime | None, follow: bool) -> Handler:
    async def handler(runtime: Runtime) -> None:
        feed = runtime.feed(user_id, cursor=after)
        backlog = await feed.bootstrap()
        for nudge in backlog:
            _print_feed_item(nudge)
        if follow:
            dim("Waiting for new nudges (Ctrl+C to stop)")
            async for nudge in feed.stream():
                _print_feed_item(nudge)
        elif not backlog:
            warning(f"No newly triggered nudges for user {user_id}")
        else:
            dim(f"Cursor: {feed.cursor.isoformat()}")

    return handler


def _print_feed_item(nudge: TriggeredNudge) -> None:
    console.print(
        f"[dim]{nudge.triggered_at.isoformat()}[/dim] "
        f"[cyan]{nudge.task_id}[/cyan] {nudge.message}"
    )


def _clear(user_id: str) -> Handler:
    async def handler(runtime: Runtime) -> None:
        engine = runtime.engine()
        removed = await engine.delete_all_for_user(user_id)
        success(f"Deleted {removed} nudge(s) for user {user_id}")

    return handler


async def _stats(runtime: Runtime) -> None:
    counts = await runtime.queries.stats()
    table = create_table("Nudges", [("State", "cyan"), ("Count", {"justify": "right"})])
    for state in ("pending", "ready", "triggered"):
        table.add_row(state, str(counts[state]))
    console.print(table)


def _when(value: datetime) -> str:
    return f"{value.isoformat()} ({format_relative(value)})"


def _print_nudges(nudges: list[NudgeRecord]) -> None:
    table = create_table(
        None,
        [
            ("Task", "cyan"),
            ("Status", ""),
            ("Delivery", ""),
            ("Triggered", "dim"),
            ("Message", {"overflow": "fold"}),
        ],
    )
    for nudge in nudges:
        if isinstance(nudge, TriggeredNudge):
            triggered = nudge.triggered_at.isoformat()
            message = nudge.message
            status = "[green]triggered[/green]"
        else:
            triggered = ""
            message = ""
            status = "[yellow]pending[/yellow]"
        table.add_row(
            nudge.task_id,
            status,
            _when(nudge.delivery_time),
            triggered,
            message,
        )
    console.print(table)
