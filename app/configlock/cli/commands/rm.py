"""Rm command implementation.

Takes a path out of management and unlocks it.
"""

import os
from pathlib import Path
from typing import Annotated

import typer

from configlock.cli.common import (
    find_managed,
    get_store,
    load_config,
    reload_daemon,
    update_config,
)
from configlock.lockers import get_locker
from configlock.lockers.base import LockError, unlock_tree
from configlock.utils.formatting import print_error, print_success, print_warning


def remove_path(
    path: Annotated[
        Path,
        typer.Argument(help="Managed file or directory to release."),
    ],
) -> None:
    """Remove a file or directory from the managed paths and unlock it.

    Examples:
        configlock rm ~/.zshrc
    """
    store = get_store()
    managed = find_managed(load_config(store), path)
    if managed is None:
        print_error(f"Path is not managed: {os.path.abspath(path)}")
        raise typer.Exit(code=1)

    update_config(store, lambda cfg: cfg.remove_path(managed))
    print_success(f"Removed from managed paths: {managed}")

    if os.path.lexists(managed):
        try:
            results = unlock_tree(get_locker(), managed)
        except LockError as e:
            print_warning(f"Failed to unlock {managed}: {e}")
        else:
            for result in results:
                if not result.success:
                    print_warning(f"Failed to unlock {result.path}: {result.error}")

    reload_daemon()
