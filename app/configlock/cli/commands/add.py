"""Add command implementation.

Puts a file or directory under management and locks it right away when
the enforcement window is open.
"""

import os
import shutil
from pathlib import Path
from typing import Annotated

import typer

from configlock.cli.common import (
    get_store,
    is_within_window,
    load_config,
    reload_daemon,
    resolve_new_path,
    update_config,
)
from configlock.lockers import get_locker
from configlock.lockers.base import LockError, lock_tree
from configlock.utils.fileutil import collect_files
from configlock.utils.formatting import (
    print_info,
    print_success,
    print_warning,
)


def _backup(path: str) -> int:
    """Copy every file under path to a sibling .bak file.

    Returns:
        Number of backups written.
    """
    files = collect_files(path) if os.path.isdir(path) else [path]
    written = 0
    for file_path in files:
        try:
            shutil.copy2(file_path, f"{file_path}.bak")
        except OSError as e:
            print_warning(f"Failed to back up {file_path}: {e}")
            continue
        written += 1
    return written


def add_path(
    path: Annotated[
        Path,
        typer.Argument(help="File or directory to lock during lock hours."),
    ],
    backup: Annotated[
        bool,
        typer.Option(
            "--backup",
            help="Create .bak copies before locking.",
        ),
    ] = False,
) -> None:
    """Add a file or directory to the managed paths.

    Directories are locked file by file, skipping .git/ and .jj/.
    Symlinks are resolved so that the lock lands on the real file.

    Examples:
        configlock add ~/.zshrc
        configlock add ~/.config/nvim --backup
    """
    resolved = resolve_new_path(path)
    store = get_store()

    if load_config(store).has_path(resolved):
        print_info(f"Path is already managed: {resolved}")
        return

    if backup:
        try:
            count = _backup(resolved)
        except OSError as e:
            print_warning(f"Failed to collect files for backup: {e}")
        else:
            print_info(f"Created {count} backup(s)")

    config = update_config(store, lambda cfg: cfg.add_path(resolved))
    kind = "directory" if os.path.isdir(resolved) else "file"
    print_success(f"Added {kind} to managed paths: {resolved}")

    if is_within_window(config):
        print_info("Within lock hours, applying locks...")
        try:
            results = lock_tree(get_locker(), resolved)
        except LockError as e:
            print_warning(f"Failed to lock {resolved}: {e}")
        else:
            failures = [r for r in results if not r.success]
            for result in failures:
                print_warning(f"Failed to lock {result.path}: {result.error}")
            if not failures:
                print_success(f"Locked {len(results)} file(s)")
    else:
        print_info("Outside lock hours. Locks will be applied when they begin.")

    reload_daemon()
