"""XDG-compliant path management for configlock.

This module provides standardized paths following the XDG Base Directory
Specification for configuration and state storage.

XDG defaults:
- Config: ~/.config/configlock/
- State: ~/.local/state/configlock/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "configlock"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/configlock/ (or XDG_CONFIG_HOME/configlock/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes the daemon log and pid file.

    Returns:
        Path to ~/.local/state/configlock/ (or XDG_STATE_HOME/configlock/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_config_path() -> Path:
    """Get the config file path.

    Returns:
        Path to ~/.config/configlock/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_config_lock_path() -> Path:
    """Get the advisory lock file guarding config read-modify-write.

    Returns:
        Path to ~/.config/configlock/config.lock.
    """
    return get_config_dir() / "config.lock"


def get_log_path() -> Path:
    """Get the daemon log file path.

    Returns:
        Path to ~/.local/state/configlock/configlock.log.
    """
    return get_state_dir() / "configlock.log"


def get_pid_path() -> Path:
    """Get the daemon pid file path.

    Returns:
        Path to ~/.local/state/configlock/daemon.pid.
    """
    return get_state_dir() / "daemon.pid"


def get_user_theme_path() -> Path:
    """Get the user theme override path.

    Returns:
        Path to ~/.config/configlock/theme.toml.
    """
    return get_config_dir() / "theme.toml"


def _ensure_dir(path: Path, name: str) -> Path:
    """Create directory if it doesn't exist.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path


def ensure_config_dir() -> Path:
    """Create the configuration directory if it doesn't exist.

    Returns:
        Path to the configuration directory.

    Raises:
        RuntimeError: If the directory cannot be created.
    """
    return _ensure_dir(get_config_dir(), "config")
