"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from configlock.core.config import ConfigStore
from configlock.lockers.base import (
    Locker,
    LockMethod,
    LockResult,
    PathMissingError,
    resolve_path,
)
from configlock.models.config import Config, ScheduleConfig

# Monday 2024-01-01
MONDAY = datetime(2024, 1, 1)


class FakeLocker(Locker):
    """In-memory locker recording which paths carry the lock."""

    def __init__(self) -> None:
        self.locked: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    def _lock_command(self, path: str) -> list[str]:
        return ["true", path]

    def _unlock_command(self, path: str) -> list[str]:
        return ["true", path]

    def _query_command(self, path: str) -> list[str]:
        return ["true", path]

    def _parse_query(self, output: str) -> bool:
        return False

    def lock(self, path: str) -> LockResult:
        real_path = resolve_path(path)
        self.calls.append(("lock", real_path))
        if not os.path.exists(real_path):
            return LockResult(path=real_path, success=False, error="path does not exist")
        self.locked.add(real_path)
        return LockResult(path=real_path, success=True, method=LockMethod.PRIMARY)

    def unlock(self, path: str) -> LockResult:
        real_path = resolve_path(path)
        self.calls.append(("unlock", real_path))
        if not os.path.exists(real_path):
            return LockResult(path=real_path, success=False, error="path does not exist")
        self.locked.discard(real_path)
        return LockResult(path=real_path, success=True, method=LockMethod.PRIMARY)

    def is_locked(self, path: str) -> bool:
        real_path = resolve_path(path)
        if not os.path.lexists(real_path):
            raise PathMissingError(f"path does not exist: {real_path}")
        return real_path in self.locked


class FakeClock:
    """Settable local-time clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, naive: datetime) -> None:
        self.now = naive.astimezone()

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeTimer:
    """threading.Timer stand-in that never fires on its own."""

    def __init__(
        self,
        interval: float,
        function: Callable[..., Any],
        args: tuple[Any, ...] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function(*self.args)


class FakeWatcher:
    """PathWatcher stand-in recording watch requests."""

    def __init__(
        self,
        on_change: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self.on_change = on_change
        self.on_error = on_error
        self.alive = False
        self.stopped = False
        self.clear_count = 0
        self.watch_calls: list[list[str]] = []
        self.watch_set: set[str] = set()

    def start(self) -> None:
        self.alive = True

    def is_alive(self) -> bool:
        return self.alive

    def watch(self, paths: list[str]) -> set[str]:
        self.watch_calls.append(list(paths))
        self.watch_set = {p for p in paths if os.path.exists(p)}
        return set(self.watch_set)

    def clear(self) -> None:
        self.clear_count += 1
        self.watch_set = set()

    def stop(self) -> None:
        self.stopped = True
        self.alive = False


class Recorder:
    """Factory that remembers every object it built."""

    def __init__(self, cls: type) -> None:
        self._cls = cls
        self.created: list[Any] = []

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        obj = self._cls(*args, **kwargs)
        self.created.append(obj)
        return obj

    @property
    def last(self) -> Any:
        return self.created[-1]


@pytest.fixture
def fake_locker() -> FakeLocker:
    """In-memory lock primitive."""
    return FakeLocker()


@pytest.fixture
def clock() -> FakeClock:
    """Clock set to Monday 09:00 local time."""
    return FakeClock(MONDAY.replace(hour=9).astimezone())


@pytest.fixture
def timers() -> Recorder:
    """Timer factory recording armed timers."""
    return Recorder(FakeTimer)


@pytest.fixture
def watchers() -> Recorder:
    """Watcher factory recording created watchers."""
    return Recorder(FakeWatcher)


@pytest.fixture
def dotfiles(tmp_path: Path) -> dict[str, Path]:
    """A home directory with a file and a config directory under version control."""
    home = tmp_path / "home"
    nvim = home / ".config" / "nvim"
    (nvim / "lua").mkdir(parents=True)
    (nvim / ".git").mkdir()

    zshrc = home / ".zshrc"
    zshrc.write_text("export EDITOR=nvim\n")
    init_lua = nvim / "init.lua"
    init_lua.write_text("vim.opt.number = true\n")
    plugins = nvim / "lua" / "plugins.lua"
    plugins.write_text("return {}\n")
    (nvim / ".git" / "HEAD").write_text("ref: refs/heads/main\n")

    return {
        "home": home,
        "zshrc": zshrc,
        "nvim": nvim,
        "init_lua": init_lua,
        "plugins": plugins,
        "git_head": nvim / ".git" / "HEAD",
    }


@pytest.fixture
def work_hours() -> ScheduleConfig:
    """Mon-Fri 08:00-17:00."""
    return ScheduleConfig.time_range("08:00", "17:00", [1, 2, 3, 4, 5])


@pytest.fixture
def store(tmp_path: Path, dotfiles: dict[str, Path], work_hours: ScheduleConfig) -> ConfigStore:
    """Config store with .zshrc and the nvim directory managed."""
    config_store = ConfigStore(path=tmp_path / "cfg" / "config.toml")
    config_store.save(
        Config(
            managed_paths=[str(dotfiles["zshrc"]), str(dotfiles["nvim"])],
            schedule=work_hours,
        )
    )
    return config_store


@pytest.fixture
def cli_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_locker: FakeLocker,
) -> Callable[[datetime], None]:
    """Isolate CLI commands: XDG dirs under tmp_path and the fake locker.

    Returns:
        Function setting the local time seen by the commands.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
    for module in (
        "configlock.cli.common",
        "configlock.cli.commands.init",
        "configlock.cli.commands.add",
        "configlock.cli.commands.rm",
        "configlock.cli.commands.temp_unlock",
        "configlock.cli.commands.listing",
        "configlock.cli.commands.stop",
    ):
        monkeypatch.setattr(f"{module}.get_locker", lambda: fake_locker)

    def set_now(naive: datetime) -> None:
        now = naive.astimezone()
        monkeypatch.setattr("configlock.cli.common.local_now", lambda: now)
        monkeypatch.setattr("configlock.cli.commands.status.local_now", lambda: now)

    set_now(MONDAY.replace(hour=9))
    return set_now


@pytest.fixture
def cli_store(
    cli_env: Callable[[datetime], None],
    dotfiles: dict[str, Path],
    work_hours: ScheduleConfig,
) -> ConfigStore:
    """Initialized config at the XDG location, managing .zshrc and the nvim directory."""
    config_store = ConfigStore()
    config_store.save(
        Config(
            managed_paths=[str(dotfiles["zshrc"]), str(dotfiles["nvim"])],
            schedule=work_hours,
        )
    )
    return config_store
