"""Daemon command implementation.

Runs the enforcement daemon in the foreground. Service managers
(systemd user units, launchd agents) are expected to start this command.
"""

from typing import Annotated

import typer

from configlock.core.config import ConfigStore
from configlock.core.log import configure_logging, shutdown_logging
from configlock.core.paths import get_pid_path
from configlock.daemon.loop import DaemonError, EnforcementDaemon
from configlock.daemon.process import running_daemon_pid
from configlock.lockers import get_locker
from configlock.utils.formatting import print_error

app = typer.Typer(
    help="Run the enforcement daemon.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def run_daemon(
    ctx: typer.Context,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Log to the log file only, not to stderr.",
        ),
    ] = False,
) -> None:
    """Run the enforcement daemon in the foreground.

    Locks managed paths during lock hours and unlocks them afterwards.
    SIGHUP reloads the config; SIGTERM or Ctrl+C unlocks everything and
    exits.

    Examples:
        configlock daemon
        configlock -v daemon        # Debug logging
    """
    if ctx.invoked_subcommand is not None:
        return

    pid = running_daemon_pid()
    if pid is not None:
        print_error(f"Daemon is already running (pid {pid})")
        raise typer.Exit(code=1)

    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    logger = configure_logging(verbose=verbose, foreground=not quiet)

    locker = get_locker()
    daemon = EnforcementDaemon(
        ConfigStore(locker=locker),
        locker,
        logger=logger,
        pid_path=get_pid_path(),
    )
    try:
        daemon.run()
    except DaemonError as e:
        logger.error("Daemon failed to start: %s", e)
        print_error(str(e))
        raise typer.Exit(code=1) from e
    finally:
        shutdown_logging(logger)
