"""Lock primitives for configlock.

This package provides one Locker per supported platform. get_locker()
picks the variant for the running system once, at startup.
"""

import platform

from configlock.lockers.base import (
    LockError,
    Locker,
    LockMethod,
    LockResult,
    PathMissingError,
    UnsupportedLocker,
    UnsupportedPlatformError,
    lock_tree,
    unlock_tree,
)
from configlock.lockers.darwin import ChflagsLocker
from configlock.lockers.linux import ChattrLocker


def get_locker(system: str | None = None) -> Locker:
    """Get the lock primitive for a platform.

    Args:
        system: Platform name as reported by platform.system().
            If None, the running platform is used.

    Returns:
        ChattrLocker on Linux, ChflagsLocker on macOS, and an
        UnsupportedLocker everywhere else.
    """
    system = system if system is not None else platform.system()
    if system == "Linux":
        return ChattrLocker()
    if system == "Darwin":
        return ChflagsLocker()
    return UnsupportedLocker(system)


__all__ = [
    "ChattrLocker",
    "ChflagsLocker",
    "LockError",
    "LockMethod",
    "LockResult",
    "Locker",
    "PathMissingError",
    "UnsupportedLocker",
    "UnsupportedPlatformError",
    "get_locker",
    "lock_tree",
    "unlock_tree",
]
