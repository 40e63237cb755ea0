"""Main CLI application."""

import typer

from nudgr.cli.commands import config, database, nudge, serve

app = typer.Typer(
    name="nudgr",
    help="Nudgr - deferred task nudges",
    no_args_is_help=True,
)

for command in (nudge, database, config, serve):
    command.register(app)


if __name__ == "__main__":
    app()
