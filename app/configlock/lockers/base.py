"""Abstract base class for lock primitives.

A locker makes a single filesystem entry unmodifiable using an OS
immutability attribute, falling back to read-only permission bits when the
attribute cannot be set. Directory recursion is the caller's job, see
lock_tree() and unlock_tree().
"""

import logging
import os
import stat
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from configlock.utils.fileutil import collect_files
from configlock.utils.shell import try_command

logger = logging.getLogger(__name__)

# Permission bits used by the fallback mechanism
FALLBACK_LOCKED_MODE: int = 0o444
FALLBACK_UNLOCKED_MODE: int = 0o644


class LockError(Exception):
    """Base exception for lock primitive errors."""


class UnsupportedPlatformError(LockError):
    """Raised when no lock primitive exists for the running platform."""


class PathMissingError(LockError):
    """Raised when the target path does not exist."""


class LockMethod(str, Enum):
    """Mechanism that produced a lock state change.

    Attributes:
        PRIMARY: The OS immutability attribute.
        FALLBACK: Read-only / writable permission bits.
    """

    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class LockResult:
    """Result of a single lock or unlock operation.

    Attributes:
        path: Path that was operated on (after symlink resolution).
        success: Whether the path ended up in the requested state.
        method: Mechanism that succeeded, None on failure.
        error: Error message if the operation failed, None otherwise.
    """

    path: str
    success: bool
    method: LockMethod | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        """Check if the fallback mechanism was used."""
        return self.method == LockMethod.FALLBACK


def resolve_path(path: str) -> str:
    """Resolve symlinks, returning the literal path if resolution fails."""
    try:
        return str(Path(path).resolve(strict=True))
    except (OSError, RuntimeError):
        return path


class Locker(ABC):
    """Abstract base class for all lock primitives.

    Subclasses provide the commands for the platform attribute; the base
    class handles symlink resolution, existence checks, the permission-bit
    fallback and logging.

    Example:
        >>> locker = get_locker()
        >>> result = locker.lock("/home/user/.zshrc")
        >>> if result.success and result.degraded:
        ...     print("locked via read-only permissions")
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the primary mechanism (e.g. "chattr")."""

    @abstractmethod
    def _lock_command(self, path: str) -> list[str]:
        """Command that sets the immutability attribute on path."""

    @abstractmethod
    def _unlock_command(self, path: str) -> list[str]:
        """Command that clears the immutability attribute on path."""

    @abstractmethod
    def _query_command(self, path: str) -> list[str]:
        """Command that prints the attribute state of path."""

    @abstractmethod
    def _parse_query(self, output: str) -> bool:
        """Interpret the query command's stdout.

        Returns:
            True if the immutability attribute is set.
        """

    def lock(self, path: str) -> LockResult:
        """Make a single filesystem entry unmodifiable.

        Args:
            path: Path to lock. Symlinks are resolved first.

        Returns:
            LockResult. A primary failure rescued by the fallback is a
            success with method=FALLBACK.
        """
        return self._apply(
            path,
            command=self._lock_command,
            fallback_mode=FALLBACK_LOCKED_MODE,
            verb="LOCK",
        )

    def unlock(self, path: str) -> LockResult:
        """Make a single filesystem entry writable again.

        Args:
            path: Path to unlock. Symlinks are resolved first.

        Returns:
            LockResult, with the same fallback semantics as lock().
        """
        result = self._apply(
            path,
            command=self._unlock_command,
            fallback_mode=FALLBACK_UNLOCKED_MODE,
            verb="UNLOCK",
        )
        if result.success and result.method == LockMethod.PRIMARY:
            self._clear_fallback_mode(result.path)
        return result

    def is_locked(self, path: str) -> bool:
        """Check whether a filesystem entry is locked.

        When the attribute query fails (tool absent, unsupported
        filesystem), the permission bits are compared against the
        fallback lock mode. That comparison cannot tell a fallback lock
        from a file that is read-only for unrelated reasons.

        Args:
            path: Path to check. Symlinks are resolved first.

        Returns:
            True if the path is considered locked.

        Raises:
            PathMissingError: If the path does not exist.
        """
        real_path = resolve_path(path)
        if not os.path.lexists(real_path):
            raise PathMissingError(f"path does not exist: {real_path}")

        result = try_command(self._query_command(real_path), timeout=None)
        if result.success:
            return self._parse_query(result.stdout)

        logger.debug(
            "%s query failed for %s, checking permission bits: %s",
            self.name,
            real_path,
            result.output,
        )
        try:
            mode = stat.S_IMODE(os.stat(real_path).st_mode)
        except OSError as e:
            raise PathMissingError(f"cannot stat {real_path}: {e}") from e
        return mode == FALLBACK_LOCKED_MODE

    def _apply(
        self,
        path: str,
        *,
        command: Callable[[str], list[str]],
        fallback_mode: int,
        verb: str,
    ) -> LockResult:
        """Run the primary command, falling back to chmod on failure."""
        real_path = resolve_path(path)
        if not os.path.exists(real_path):
            return LockResult(
                path=real_path,
                success=False,
                error=f"path does not exist: {real_path}",
            )

        args = command(real_path)
        result = try_command(args, timeout=None)
        if result.success:
            logger.info("%s: %s", verb, " ".join(args))
            return LockResult(path=real_path, success=True, method=LockMethod.PRIMARY)

        try:
            os.chmod(real_path, fallback_mode)
        except OSError as e:
            error = (
                f"{self.name} failed and fallback failed: {e}, "
                f"output: {result.output or 'none'}"
            )
            return LockResult(path=real_path, success=False, error=error)

        logger.info("%s (fallback chmod %o): %s", verb, fallback_mode, real_path)
        logger.debug("%s failed for %s: %s", self.name, real_path, result.output)
        return LockResult(path=real_path, success=True, method=LockMethod.FALLBACK)

    def _clear_fallback_mode(self, path: str) -> None:
        """Restore write permission left behind by an earlier fallback lock."""
        try:
            if stat.S_IMODE(os.stat(path).st_mode) == FALLBACK_LOCKED_MODE:
                os.chmod(path, FALLBACK_UNLOCKED_MODE)
        except OSError as e:
            logger.debug("Could not restore write permission on %s: %s", path, e)


class UnsupportedLocker(Locker):
    """Locker for platforms without an immutability primitive.

    Every operation raises UnsupportedPlatformError.
    """

    def __init__(self, system: str) -> None:
        self._system = system

    @property
    def name(self) -> str:
        return "unsupported"

    def _unsupported(self) -> UnsupportedPlatformError:
        return UnsupportedPlatformError(f"unsupported OS: {self._system or 'unknown'}")

    def _lock_command(self, path: str) -> list[str]:
        raise self._unsupported()

    def _unlock_command(self, path: str) -> list[str]:
        raise self._unsupported()

    def _query_command(self, path: str) -> list[str]:
        raise self._unsupported()

    def _parse_query(self, output: str) -> bool:
        raise self._unsupported()

    def lock(self, path: str) -> LockResult:
        raise self._unsupported()

    def unlock(self, path: str) -> LockResult:
        raise self._unsupported()

    def is_locked(self, path: str) -> bool:
        raise self._unsupported()


def lock_tree(locker: Locker, path: str) -> list[LockResult]:
    """Lock a path, expanding directories into their regular files.

    Args:
        locker: Lock primitive to use.
        path: File or directory to lock.

    Returns:
        One LockResult per file operated on.

    Raises:
        UnsupportedPlatformError: If the locker has no primitive.
    """
    return [locker.lock(p) for p in expand_path(path)]


def unlock_tree(locker: Locker, path: str) -> list[LockResult]:
    """Unlock a path, expanding directories into their regular files.

    Args:
        locker: Lock primitive to use.
        path: File or directory to unlock.

    Returns:
        One LockResult per file operated on.

    Raises:
        UnsupportedPlatformError: If the locker has no primitive.
    """
    return [locker.unlock(p) for p in expand_path(path)]


def expand_path(path: str) -> list[str]:
    """Expand a managed path into the entries a locker operates on.

    Directories (after symlink resolution) expand to their regular files,
    excluding version-control metadata. Anything else, including a missing
    path, is returned as-is so the locker reports it.

    Args:
        path: File or directory path.

    Returns:
        List of paths.
    """
    real_path = resolve_path(path)
    if os.path.isdir(real_path):
        try:
            return collect_files(real_path)
        except OSError as e:
            logger.warning("Failed to collect files under %s: %s", real_path, e)
            return []
    return [path]

