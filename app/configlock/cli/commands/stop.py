"""Stop command implementation.

Stops the daemon, which unlocks every managed path on its way out. When
no daemon is running the paths are unlocked directly.
"""

import os
import signal
import time
from typing import Annotated

import typer

from configlock.cli.common import get_store, load_config
from configlock.daemon.process import running_daemon_pid, signal_daemon
from configlock.lockers import get_locker
from configlock.lockers.base import LockError, unlock_tree
from configlock.utils.formatting import (
    console,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Stop the daemon and unlock all paths.",
    invoke_without_command=True,
)

# Seconds between checks while waiting for the daemon to exit
_POLL_INTERVAL: float = 0.2


def _wait_for_exit(timeout: float) -> bool:
    """Wait until no daemon is running.

    Returns:
        True if the daemon exited within the timeout.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if running_daemon_pid() is None:
            return True
        time.sleep(_POLL_INTERVAL)
    return running_daemon_pid() is None


def _unlock_all(paths: list[str]) -> int:
    """Unlock every managed path.

    Returns:
        Number of files that failed to unlock.
    """
    locker = get_locker()
    failures = 0
    for path in paths:
        if not os.path.lexists(path):
            print_warning(f"Managed path no longer exists: {path}")
            continue
        try:
            results = unlock_tree(locker, path)
        except LockError as e:
            print_warning(f"Failed to unlock {path}: {e}")
            failures += 1
            continue
        for result in results:
            if not result.success:
                print_warning(f"Failed to unlock {result.path}: {result.error}")
                failures += 1
    return failures


@app.callback(invoke_without_command=True)
def stop(
    ctx: typer.Context,
    timeout: Annotated[
        float,
        typer.Option(
            "--timeout",
            help="Seconds to wait for the daemon to exit.",
        ),
    ] = 10.0,
) -> None:
    """Stop the daemon and unlock all managed paths.

    Managed paths stay in the config; locks are applied again the next
    time the daemon runs during lock hours.

    Examples:
        configlock stop
    """
    if ctx.invoked_subcommand is not None:
        return

    config = load_config(get_store())

    if signal_daemon(signal.SIGTERM):
        print_info("Stopping daemon...")
        if _wait_for_exit(timeout):
            print_success("Daemon stopped, all paths unlocked")
            return
        print_warning("Daemon did not exit in time, unlocking paths directly")
    else:
        print_info("Daemon is not running, unlocking paths directly")

    failures = _unlock_all(config.managed_paths)
    console.print()
    if failures:
        print_warning(f"{failures} file(s) could not be unlocked. You may need to unlock them manually.")
        raise typer.Exit(code=1)
    print_success(f"All {len(config.managed_paths)} managed path(s) unlocked")
