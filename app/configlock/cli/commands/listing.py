"""List command implementation.

Shows the managed paths with their current lock state.
"""

import os

import typer

from configlock.cli.common import get_store, load_config
from configlock.core.exclusions import ExclusionSet
from configlock.lockers import get_locker
from configlock.lockers.base import Locker, LockError, expand_path
from configlock.utils.formatting import (
    console,
    create_path_table,
    format_duration,
    print_info,
)

app = typer.Typer(
    help="List managed paths.",
    invoke_without_command=True,
)


def _describe_state(locker: Locker, path: str) -> str:
    """Lock state of a managed path as rich markup."""
    files = expand_path(path)
    try:
        locked = sum(1 for f in files if locker.is_locked(f))
    except LockError:
        return "[muted]unknown[/muted]"
    if os.path.isdir(path):
        style = "locked" if files and locked == len(files) else "unlocked"
        return f"[{style}]{locked}/{len(files)} locked[/{style}]"
    return "[locked]locked[/locked]" if locked else "[unlocked]unlocked[/unlocked]"


@app.callback(invoke_without_command=True)
def list_paths(ctx: typer.Context) -> None:
    """List all managed paths.

    Examples:
        configlock list
    """
    if ctx.invoked_subcommand is not None:
        return

    config = load_config(get_store())
    if not config.managed_paths:
        print_info("No managed paths.")
        print_info("Use 'configlock add <path>' to add paths.")
        return

    locker = get_locker()
    exclusions = ExclusionSet(config.exclusions)
    table = create_path_table(title=f"Managed Paths ({len(config.managed_paths)})")

    for index, path in enumerate(config.managed_paths, start=1):
        if not os.path.lexists(path):
            table.add_row(str(index), path, "missing", "[error]missing[/error]")
            continue

        kind = "directory" if os.path.isdir(path) else "file"
        remaining = exclusions.remaining(path)
        if remaining is not None:
            state = f"[excluded]unlocked for {format_duration(remaining)}[/excluded]"
        else:
            state = _describe_state(locker, path)
        table.add_row(str(index), path, kind, state)

    console.print(table)
