"""Config file I/O operations.

This module provides the ConfigStore, which loads and saves config.toml
with validation through Pydantic models. The daemon and the CLI run as
separate processes, so every read-modify-write goes through update(),
which holds an exclusive advisory lock and writes atomically.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tomllib
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import TYPE_CHECKING, Any

import tomli_w
from pydantic import ValidationError

from configlock.core.paths import get_config_lock_path, get_config_path
from configlock.lockers.base import LockError
from configlock.models.config import Config

if TYPE_CHECKING:
    from configlock.lockers.base import Locker

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base exception for config-related errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""


class ConfigValidationError(ConfigError):
    """Raised when config content is invalid."""


class ConfigStore:
    """Persistence for the configlock config file.

    Storage location: ~/.config/configlock/config.toml

    The config file is itself usually a managed path, so it may carry the
    immutable attribute while a window is open. When a locker is given,
    save() lifts the lock for the duration of the write and restores it
    afterwards.

    Attributes:
        path: Path to config.toml.
        lock_path: Path to the advisory lock file.
    """

    def __init__(
        self,
        path: Path | None = None,
        lock_path: Path | None = None,
        locker: Locker | None = None,
    ) -> None:
        """Initialize ConfigStore.

        Args:
            path: Optional override for the config file path.
            lock_path: Optional override for the advisory lock file path.
                Defaults to config.lock next to the config file.
            locker: Locker used to lift the immutable attribute on the
                config file while writing. None skips that step.
        """
        self.path = path or get_config_path()
        if lock_path is not None:
            self.lock_path = lock_path
        elif path is not None:
            self.lock_path = path.with_name("config.lock")
        else:
            self.lock_path = get_config_lock_path()
        self._locker = locker

    @property
    def config_dir(self) -> Path:
        """Directory holding the config file."""
        return self.path.parent

    def exists(self) -> bool:
        """Check if the config file exists."""
        return self.path.exists()

    def load(self) -> Config:
        """Load and validate the config.

        Returns:
            Validated Config object.

        Raises:
            ConfigNotFoundError: If the config file doesn't exist.
            ConfigParseError: If the TOML syntax is invalid.
            ConfigValidationError: If the content doesn't match the schema.
        """
        if not self.path.exists():
            raise ConfigNotFoundError(
                f"Config not found: {self.path}. Run 'configlock init' first."
            )

        try:
            with open(self.path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read config: {e}") from e

        try:
            return Config.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid config content: {e}") from e

    def save(self, config: Config) -> Path:
        """Save the config atomically.

        The file is written to a temporary file in the same directory and
        moved into place with os.replace(). Callers that read, modify and
        write should use update() instead so the write happens under the
        exclusive lock.

        Args:
            config: The Config object to save.

        Returns:
            Path where the config was saved.

        Raises:
            ConfigError: If the file cannot be written.
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        data = config_to_dict(config)

        relock = self._lift_lock()
        tmp_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="wb",
                dir=self.config_dir,
                delete=False,
                prefix=".config-",
                suffix=".tmp",
            ) as f:
                tmp_path = Path(f.name)
                tomli_w.dump(data, f)
            os.chmod(tmp_path, 0o644)
            os.replace(str(tmp_path), str(self.path))
        except OSError as e:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise ConfigError(f"Failed to write config: {e}") from e
        finally:
            if relock:
                self._restore_lock()

        return self.path

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the exclusive config lock for the duration of the block.

        Raises:
            ConfigError: If the lock file cannot be opened.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            handle = open(self.lock_path, "a")  # noqa: SIM115
        except OSError as e:
            raise ConfigError(f"Failed to open config lock {self.lock_path}: {e}") from e
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()

    def update(self, mutator: Callable[[Config], object]) -> Config:
        """Load, mutate and save the config under the exclusive lock.

        The config is only written when the mutator returns a truthy value
        or None; returning False signals "nothing changed" and skips the
        write.

        Args:
            mutator: Callable applied to the freshly loaded config.

        Returns:
            The config as it stands after the mutation.

        Raises:
            ConfigError: If loading or saving fails.
        """
        with self.exclusive():
            config = self.load()
            changed = mutator(config)
            if changed is None or changed:
                self.save(config)
            return config

    def _lift_lock(self) -> bool:
        """Unlock the config file if it carries the lock.

        Returns:
            True if the lock must be restored after writing.

        Raises:
            ConfigError: If the config file is locked and cannot be unlocked.
        """
        if self._locker is None or not self.path.exists():
            return False

        try:
            locked = self._locker.is_locked(str(self.path))
        except LockError as e:
            logger.debug("Could not query lock state of %s: %s", self.path, e)
            return False
        if not locked:
            return False

        result = self._locker.unlock(str(self.path))
        if not result.success:
            raise ConfigError(f"Failed to unlock config for writing: {result.error}")
        return True

    def _restore_lock(self) -> None:
        """Re-apply the lock lifted by _lift_lock()."""
        assert self._locker is not None
        result = self._locker.lock(str(self.path))
        if not result.success:
            logger.error("Failed to re-lock config after writing: %s", result.error)


def config_to_dict(config: Config) -> dict[str, Any]:
    """Convert a Config to a dictionary suitable for TOML serialization.

    Unset schedule fields are omitted because TOML has no null.

    Args:
        config: The Config object to convert.

    Returns:
        Dictionary ready for TOML serialization.
    """
    return {
        "managed_paths": list(config.managed_paths),
        "temp_exclusion_minutes": config.temp_exclusion_minutes,
        "schedule": config.schedule.model_dump(exclude_none=True),
        "exclusions": dict(config.exclusions),
    }
