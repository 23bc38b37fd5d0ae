"""Shared helpers for CLI commands.

This module provides config access, path resolution and daemon
signalling used across multiple CLI command modules.
"""

import os
import signal
from collections.abc import Callable
from pathlib import Path

import typer

from configlock.core.config import ConfigError, ConfigStore
from configlock.core.exclusions import local_now
from configlock.core.schedule import evaluator_for
from configlock.daemon.process import signal_daemon
from configlock.lockers import get_locker
from configlock.lockers.base import resolve_path
from configlock.models.config import Config
from configlock.utils.fileutil import is_within
from configlock.utils.formatting import print_error, print_info


def get_store() -> ConfigStore:
    """Config store that lifts the lock on the config file while writing."""
    return ConfigStore(locker=get_locker())


def load_config(store: ConfigStore) -> Config:
    """Load the config or exit with an error message."""
    try:
        return store.load()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def update_config(store: ConfigStore, mutator: Callable[[Config], object]) -> Config:
    """Apply a mutation under the config lock or exit with an error message."""
    try:
        return store.update(mutator)
    except ConfigError as e:
        print_error(f"Failed to update config: {e}")
        raise typer.Exit(code=1) from e


def is_within_window(config: Config) -> bool:
    """Check whether the enforcement window is open right now."""
    return evaluator_for(config.schedule).is_within_window(local_now())


def resolve_new_path(path: Path) -> str:
    """Resolve a path about to be managed.

    Symlinks are replaced by their target so that the lock lands on the
    real file.

    Args:
        path: Path given on the command line.

    Returns:
        Absolute, symlink-free path.

    Raises:
        typer.Exit: If the path does not exist or is a broken symlink.
    """
    abs_path = os.path.abspath(os.path.expanduser(path))
    if not os.path.lexists(abs_path):
        print_error(f"Path does not exist: {path}")
        raise typer.Exit(code=1)

    if os.path.islink(abs_path):
        if not os.path.exists(abs_path):
            print_error(
                f"Symlink {abs_path} -> {os.readlink(abs_path)} is broken "
                "(target does not exist)"
            )
            raise typer.Exit(code=1)
        real_path = resolve_path(abs_path)
        print_info(f"Resolved symlink {abs_path} -> {real_path}")
        return real_path

    return abs_path


def find_managed(config: Config, path: Path) -> str | None:
    """Find the managed path entry a command-line path refers to.

    Both the literal absolute path and its symlink-resolved form are tried.

    Returns:
        The entry as stored in the config, or None if it is not managed.
    """
    abs_path = os.path.abspath(os.path.expanduser(path))
    for candidate in (abs_path, resolve_path(abs_path)):
        if config.has_path(candidate):
            return candidate
    return None


def find_covering(config: Config, path: str) -> str | None:
    """Find the managed path that is equal to or an ancestor of path."""
    for managed in config.managed_paths:
        if is_within(path, managed):
            return managed
    return None


def reload_daemon() -> bool:
    """Ask a running daemon to reload its config.

    Returns:
        True if a daemon was signalled.
    """
    if signal_daemon(signal.SIGHUP):
        print_info("Daemon notified to reload configuration.")
        return True
    return False
