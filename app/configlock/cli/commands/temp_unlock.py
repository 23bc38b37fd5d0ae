"""Temp-unlock command implementation.

Exempts a managed path from enforcement for a limited time. The exclusion
is saved before the path is unlocked so that a running daemon does not
lock it again in between.
"""

import os
from pathlib import Path
from typing import Annotated

import typer

from configlock.cli.common import (
    find_covering,
    find_managed,
    get_store,
    load_config,
    reload_daemon,
    update_config,
)
from configlock.core.exclusions import ExclusionSet
from configlock.lockers import get_locker
from configlock.lockers.base import LockError, resolve_path, unlock_tree
from configlock.models.config import Config
from configlock.utils.formatting import print_error, print_success, print_warning


def _target_for(config: Config, path: Path) -> str | None:
    """Managed path, or a path inside a managed directory, to exclude."""
    managed = find_managed(config, path)
    if managed is not None:
        return managed
    abs_path = os.path.abspath(os.path.expanduser(path))
    for candidate in (abs_path, resolve_path(abs_path)):
        if find_covering(config, candidate) is not None:
            return candidate
    return None


def temp_unlock(
    path: Annotated[
        Path,
        typer.Argument(help="Managed path, or a file inside a managed directory."),
    ],
    duration: Annotated[
        int | None,
        typer.Option(
            "--duration",
            "-d",
            min=1,
            help="Minutes to stay unlocked. Defaults to the configured duration.",
        ),
    ] = None,
) -> None:
    """Temporarily unlock a path.

    Examples:
        configlock temp-unlock ~/.zshrc
        configlock temp-unlock ~/.config/nvim --duration 15
    """
    store = get_store()
    config = load_config(store)
    target = _target_for(config, path)
    if target is None:
        print_error(f"Path is not managed: {os.path.abspath(path)}")
        raise typer.Exit(code=1)

    minutes = duration or config.temp_exclusion_minutes
    update_config(store, lambda cfg: ExclusionSet(cfg.exclusions).add(target, minutes))
    reload_daemon()

    unlocked = 0
    try:
        results = unlock_tree(get_locker(), target)
    except LockError as e:
        print_warning(f"Failed to unlock {target}: {e}")
        results = []
    for result in results:
        if result.success:
            unlocked += 1
        else:
            print_warning(f"Failed to unlock {result.path}: {result.error}")

    print_success(f"Temporarily unlocked {unlocked} file(s) under {target} for {minutes} minutes")
