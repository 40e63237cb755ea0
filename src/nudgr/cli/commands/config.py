"""Configuration commands."""

from pathlib import Path
from typing import Annotated

import typer

from nudgr.cli.console import console, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        ctx: typer.Context,
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $NUDGR_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Show or validate configuration."""
        if action is None:
            typer.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError
        from rich.syntax import Syntax
        from rich.table import Table

        from nudgr.config import load_config
        from nudgr.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            content = expanded_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            try:
                config_obj = load_config(expanded_path)
            except ValidationError as e:
                error("Configuration validation failed:")
                console.print()
                for err in e.errors():
                    loc = ".".join(str(x) for x in err["loc"])
                    console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
                raise typer.Exit(1) from None
            except Exception as e:
                error(f"Error loading config: {e}")
                raise typer.Exit(1) from None

            table = Table(title="Configuration Summary")
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            for alias in config_obj.list_models():
                model = config_obj.get_model(alias)
                has_key = config_obj.resolve_api_key(alias) is not None
                key_status = "[green]✓[/green]" if has_key else "[yellow]?[/yellow]"
                table.add_row(
                    f"Model '{alias}'",
                    f"{model.provider}/{model.model} {key_status}",
                )

            table.add_row(
                "Database", config_obj.database.url or str(config_obj.database.path)
            )
            table.add_row(
                "Max message length", str(config_obj.engine.max_message_length)
            )
            table.add_row(
                "Watcher",
                f"every {config_obj.watcher.poll_interval:g}s"
                if config_obj.watcher.enabled
                else "[dim]disabled[/dim]",
            )
            table.add_row(
                "Feed",
                f"every {config_obj.feed.poll_interval:g}s, "
                f"{config_obj.feed.poll_limit} per poll",
            )

            success("Configuration is valid!")
            console.print()
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)
