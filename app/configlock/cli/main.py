"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from configlock import __version__
from configlock.cli.commands import (
    add,
    daemon,
    init,
    listing,
    logs,
    reload,
    rm,
    schedule,
    status,
    stop,
    temp_unlock,
)

# Create main Typer app
app = typer.Typer(
    name="configlock",
    help="Lock config files during work hours.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"configlock version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """configlock - Lock config files during work hours.

    Managed files are made immutable while the enforcement window is open
    and released when it closes, so that tweaking dotfiles waits until
    after work.
    """
    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# Commands taking a path argument
app.command(name="add")(add.add_path)
app.command(name="rm")(rm.remove_path)
app.command(name="temp-unlock")(temp_unlock.temp_unlock)

# Register command groups
app.add_typer(init.app, name="init")
app.add_typer(listing.app, name="list")
app.add_typer(status.app, name="status")
app.add_typer(schedule.app, name="schedule")
app.add_typer(daemon.app, name="daemon")
app.add_typer(stop.app, name="stop")
app.add_typer(reload.app, name="reload")
app.add_typer(logs.app, name="logs")


if __name__ == "__main__":
    app()
