"""Server command for running the nudge watcher."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        once: Annotated[
            bool,
            typer.Option(
                "--once",
                help="Run a single poll and exit",
            ),
        ] = False,
    ) -> None:
        """Run the background watcher that triggers ready nudges."""
        try:
            asyncio.run(_run_server(config, once))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(config_path: Path | None = None, once: bool = False) -> None:
    from nudgr.cli.console import error, success
    from nudgr.cli.runtime import default_context, open_runtime, resolve_config
    from nudgr.logging import configure_logging
    from nudgr.nudges import NudgeWatcher

    configure_logging(use_rich=True, log_to_file=not once)

    try:
        config = resolve_config(config_path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None

    async with open_runtime(config) as runtime:
        watcher = NudgeWatcher(
            runtime.engine(),
            runtime.queries,
            default_context,
            poll_interval=config.watcher.poll_interval,
            max_users_per_poll=config.watcher.max_users_per_poll,
        )

        if once:
            result = await watcher.poll_once()
            success(
                f"Triggered {result.triggered}, skipped {result.skipped}, "
                f"errors {result.errors}"
            )
            return

        if not config.watcher.enabled:
            error("Watcher is disabled in config ([watcher] enabled = false)")
            raise typer.Exit(1)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        await watcher.start()
        logger.info("server_started", extra={"db.url": runtime.db.url})
        try:
            await stop.wait()
        finally:
            await watcher.stop()
            logger.info("server_stopped")
