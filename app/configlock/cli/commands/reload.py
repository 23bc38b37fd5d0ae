"""Reload command implementation."""

import signal

import typer

from configlock.daemon.process import signal_daemon
from configlock.utils.formatting import print_error, print_success

app = typer.Typer(
    help="Make the daemon reload its config.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def reload(ctx: typer.Context) -> None:
    """Send SIGHUP to the running daemon.

    Examples:
        configlock reload
    """
    if ctx.invoked_subcommand is not None:
        return

    if not signal_daemon(signal.SIGHUP):
        print_error("Daemon is not running")
        raise typer.Exit(code=1)
    print_success("Daemon reloading configuration")
