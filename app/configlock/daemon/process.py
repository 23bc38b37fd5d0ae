"""Daemon process identity.

The running daemon records its pid in the state directory. CLI commands
use it to signal the daemon: SIGHUP to reload the config after an edit,
SIGTERM to stop it with a final unlock pass.
"""

import contextlib
import logging
import os
import signal
from pathlib import Path

from configlock.core.paths import get_pid_path

logger = logging.getLogger(__name__)


def write_pid(path: Path | None = None) -> Path:
    """Record the current process id.

    Args:
        path: Pid file path. If None, uses the default state-dir pid file.

    Returns:
        Path of the pid file.
    """
    pid_path = path or get_pid_path()
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(f"{os.getpid()}\n", encoding="utf-8")
    return pid_path


def remove_pid(path: Path | None = None) -> None:
    """Remove the pid file if it belongs to the current process."""
    pid_path = path or get_pid_path()
    if read_pid(pid_path) == os.getpid():
        with contextlib.suppress(FileNotFoundError):
            pid_path.unlink()


def read_pid(path: Path | None = None) -> int | None:
    """Read the recorded daemon pid.

    Returns:
        The pid, or None if the file is missing or unreadable.
    """
    pid_path = path or get_pid_path()
    try:
        return int(pid_path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def is_process_alive(pid: int) -> bool:
    """Check whether a process with the given pid exists."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def running_daemon_pid(path: Path | None = None) -> int | None:
    """Get the pid of the running daemon.

    Returns:
        The pid if the pid file points at a live process, None otherwise.
    """
    pid = read_pid(path)
    if pid is None or not is_process_alive(pid):
        return None
    return pid


def signal_daemon(sig: signal.Signals, path: Path | None = None) -> bool:
    """Send a signal to the running daemon.

    Args:
        sig: Signal to send.
        path: Pid file path. If None, uses the default state-dir pid file.

    Returns:
        True if the signal was delivered, False if no daemon is running.
    """
    pid = running_daemon_pid(path)
    if pid is None:
        return False
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    logger.debug("Sent %s to daemon pid %d", sig.name, pid)
    return True
