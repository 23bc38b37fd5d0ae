"""Unit tests for the enforcement daemon.

The daemon is driven message by message through handle(), with a fake
locker, watcher, timer and clock.
"""

import logging
import signal
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from configlock.core.config import ConfigStore
from configlock.core.exclusions import ExclusionSet
from configlock.daemon.loop import (
    DaemonError,
    EnforcementDaemon,
    FileChanged,
    Reload,
    Shutdown,
    Terminate,
    Tick,
    WatcherFailed,
)
from configlock.lockers.base import UnsupportedLocker
from configlock.models.config import ScheduleConfig

TEST_LOGGER = "tests.configlock.daemon"


@pytest.fixture
def notifier() -> MagicMock:
    """Notifier mock."""
    return MagicMock()


@pytest.fixture
def make_daemon(
    store: ConfigStore,
    fake_locker: Any,
    clock: Any,
    watchers: Any,
    timers: Any,
    notifier: MagicMock,
) -> Any:
    """Build a daemon wired to the fakes."""

    def _make(**overrides: Any) -> EnforcementDaemon:
        kwargs: dict[str, Any] = {
            "notifier": notifier,
            "logger": logging.getLogger(TEST_LOGGER),
            "clock": clock,
            "watcher_factory": watchers,
            "timer_factory": timers,
            "suppression_window": 0.0,
        }
        kwargs.update(overrides)
        locker = kwargs.pop("locker", fake_locker)
        return EnforcementDaemon(store, locker, **kwargs)

    return _make


@pytest.fixture
def daemon(make_daemon: Any) -> EnforcementDaemon:
    """Started daemon, not yet ticked."""
    d = make_daemon()
    d.start()
    return d


def _files(dotfiles: dict[str, Path], *names: str) -> set[str]:
    return {str(dotfiles[name]) for name in names}


class TestStart:
    """Tests for daemon startup."""

    def test_missing_config_raises(self, tmp_path: Path, fake_locker: Any) -> None:
        """start raises DaemonError when the config cannot be loaded."""
        d = EnforcementDaemon(ConfigStore(path=tmp_path / "none.toml"), fake_locker)

        with pytest.raises(DaemonError, match="failed to load config"):
            d.start()

    def test_watcher_failure_raises(self, make_daemon: Any) -> None:
        """start raises DaemonError when the watcher cannot be created."""

        def broken_factory(*args: Any) -> Any:
            raise OSError("inotify instance limit reached")

        d = make_daemon(watcher_factory=broken_factory)

        with pytest.raises(DaemonError, match="failed to create watcher"):
            d.start()

    def test_start_is_inactive(self, daemon: EnforcementDaemon, watchers: Any) -> None:
        """A started daemon has a running watcher but no watches yet."""
        assert daemon.running
        assert daemon.state.active is False
        assert watchers.last.alive
        assert watchers.last.watch_calls == []


class TestTick:
    """Tests for the window state machine."""

    def test_entering_window_locks_everything(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        watchers: Any,
        timers: Any,
    ) -> None:
        """Inactive -> active locks all managed files and establishes watches."""
        daemon.handle(Tick())

        assert daemon.state.active is True
        assert fake_locker.locked == _files(dotfiles, "zshrc", "init_lua", "plugins")
        assert daemon.state.watch_set == {str(dotfiles["zshrc"]), str(dotfiles["nvim"])}
        assert len(watchers.last.watch_calls) == 1
        assert timers.last.interval == 30.0
        assert timers.last.started
        assert timers.last.daemon

    def test_vcs_metadata_never_locked(
        self, daemon: EnforcementDaemon, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """Files under .git are skipped when locking a directory."""
        daemon.handle(Tick())

        assert str(dotfiles["git_head"]) not in fake_locker.locked

    def test_outside_window_locks_nothing(
        self, daemon: EnforcementDaemon, fake_locker: Any, clock: Any, timers: Any
    ) -> None:
        """Outside the window nothing is locked and the idle delay is capped."""
        clock.set(clock.now.replace(tzinfo=None, day=6))  # Saturday

        daemon.handle(Tick())

        assert daemon.state.active is False
        assert fake_locker.locked == set()
        assert timers.last.interval == 300.0

    def test_idle_delay_until_window_start(
        self, daemon: EnforcementDaemon, clock: Any, timers: Any
    ) -> None:
        """The idle timer fires when the window opens if that is sooner."""
        clock.set(clock.now.replace(tzinfo=None, hour=7, minute=59, second=50))

        daemon.handle(Tick())

        assert timers.last.interval == pytest.approx(10.0)

    def test_leaving_window_unlocks_everything(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        clock: Any,
        watchers: Any,
    ) -> None:
        """Active -> inactive removes watches and unlocks all managed files."""
        daemon.handle(Tick())
        clock.set(clock.now.replace(tzinfo=None, hour=17, minute=0))

        daemon.handle(Tick())

        assert daemon.state.active is False
        assert fake_locker.locked == set()
        assert daemon.state.watch_set == set()
        assert watchers.last.clear_count >= 1

    def test_sweep_restores_removed_lock(
        self, daemon: EnforcementDaemon, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """A lock removed behind the daemon's back is re-applied on the next tick."""
        daemon.handle(Tick())
        fake_locker.locked.discard(str(dotfiles["zshrc"]))

        daemon.handle(Tick())

        assert str(dotfiles["zshrc"]) in fake_locker.locked

    def test_sweep_is_idempotent(
        self, daemon: EnforcementDaemon, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """Repeated ticks in the window do not re-lock files that are locked."""
        daemon.handle(Tick())
        calls_after_first = len(fake_locker.calls)

        daemon.handle(Tick())

        assert len(fake_locker.calls) == calls_after_first
        assert fake_locker.locked == _files(dotfiles, "zshrc", "init_lua", "plugins")

    def test_missing_managed_path_is_skipped(
        self, daemon: EnforcementDaemon, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """A managed path that no longer exists does not stop the sweep."""
        dotfiles["zshrc"].unlink()

        daemon.handle(Tick())

        assert daemon.state.active is True
        assert fake_locker.locked == _files(dotfiles, "init_lua", "plugins")

    def test_malformed_cron_fails_open(
        self, store: ConfigStore, make_daemon: Any, fake_locker: Any, timers: Any
    ) -> None:
        """An invalid cron expression never opens the window."""
        store.update(lambda cfg: setattr(cfg, "schedule", ScheduleConfig.from_cron("not cron")))
        d = make_daemon()
        d.start()

        d.handle(Tick())

        assert d.state.active is False
        assert fake_locker.locked == set()
        assert timers.last.interval == 300.0

    def test_unsupported_platform_does_not_crash(
        self, make_daemon: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Without a lock primitive the sweep is aborted and logged."""
        d = make_daemon(locker=UnsupportedLocker("Plan9"))
        d.start()

        with caplog.at_level(logging.ERROR, logger=TEST_LOGGER):
            d.handle(Tick())

        assert d.state.active is True
        assert "unsupported OS: Plan9" in caplog.text

    def test_dead_watcher_is_replaced(
        self, daemon: EnforcementDaemon, watchers: Any
    ) -> None:
        """A watcher whose thread died is replaced and re-watches the paths."""
        daemon.handle(Tick())
        watchers.last.alive = False

        daemon.handle(Tick())

        assert len(watchers.created) == 2
        assert watchers.created[0].stopped
        assert len(watchers.last.watch_calls) == 1

    def test_changed_paths_rewatched(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        dotfiles: dict[str, Path],
        watchers: Any,
    ) -> None:
        """Edits to the managed path list are picked up on the next tick."""
        daemon.handle(Tick())
        store.update(lambda cfg: cfg.remove_path(str(dotfiles["nvim"])))

        daemon.handle(Tick())

        assert watchers.last.watch_calls[-1] == [str(dotfiles["zshrc"])]

    def test_paths_added_before_event_rewatched(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        dotfiles: dict[str, Path],
        watchers: Any,
    ) -> None:
        """A path list change first seen while handling an event is watched."""
        bashrc = dotfiles["home"] / ".bashrc"
        bashrc.write_text("alias ll=ls\n")
        daemon.handle(Tick())
        store.update(lambda cfg: cfg.add_path(str(bashrc)))

        daemon.handle(FileChanged(str(dotfiles["zshrc"])))
        daemon.handle(Tick())

        assert str(bashrc) in daemon.state.watch_set
        assert str(bashrc) in watchers.last.watch_calls[-1]

    def test_sweep_prunes_expired_suppression(
        self, daemon: EnforcementDaemon, dotfiles: dict[str, Path]
    ) -> None:
        """Suppression entries for files that vanished are dropped by the sweep."""
        zshrc = str(dotfiles["zshrc"])
        daemon.handle(Tick())
        assert zshrc in daemon._recently_locked
        dotfiles["zshrc"].unlink()

        daemon.handle(Tick())

        assert zshrc not in daemon._recently_locked


class TestExclusions:
    """Tests for temporary exclusions during enforcement."""

    def test_excluded_path_left_unlocked_until_expiry(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        clock: Any,
    ) -> None:
        """An exclusion keeps a path unlocked; once expired it is locked and dropped."""
        zshrc = str(dotfiles["zshrc"])
        store.update(lambda cfg: ExclusionSet(cfg.exclusions, clock).add(zshrc, 5))

        daemon.handle(Tick())
        assert zshrc not in fake_locker.locked

        clock.advance(minutes=6)
        daemon.handle(Tick())

        assert zshrc in fake_locker.locked
        assert store.load().exclusions == {}

    def test_excluded_file_inside_directory(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        clock: Any,
    ) -> None:
        """Excluding one file of a managed directory locks the rest."""
        init_lua = str(dotfiles["init_lua"])
        store.update(lambda cfg: ExclusionSet(cfg.exclusions, clock).add(init_lua, 5))

        daemon.handle(Tick())

        assert fake_locker.locked == _files(dotfiles, "zshrc", "plugins")


class TestFileChanged:
    """Tests for change event handling."""

    def test_event_in_managed_directory(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        notifier: MagicMock,
    ) -> None:
        """An event on a file inside a managed directory re-locks that file."""
        daemon.handle(Tick())
        init_lua = str(dotfiles["init_lua"])
        fake_locker.locked.discard(init_lua)

        daemon.handle(FileChanged(init_lua))

        assert init_lua in fake_locker.locked
        notifier.notify.assert_called_once()
        assert str(dotfiles["nvim"]) in notifier.notify.call_args.args[1]

    def test_event_on_managed_file(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        notifier: MagicMock,
    ) -> None:
        """An event on a managed file re-locks it and notifies."""
        daemon.handle(Tick())
        zshrc = str(dotfiles["zshrc"])
        fake_locker.locked.discard(zshrc)

        daemon.handle(FileChanged(zshrc))

        assert zshrc in fake_locker.locked
        assert zshrc in notifier.notify.call_args.args[1]

    def test_unmanaged_sibling_ignored(
        self,
        daemon: EnforcementDaemon,
        dotfiles: dict[str, Path],
        notifier: MagicMock,
    ) -> None:
        """Events on other files in a watched parent directory are ignored."""
        daemon.handle(Tick())
        history = dotfiles["home"] / ".zsh_history"
        history.write_text("ls\n")

        daemon.handle(FileChanged(str(history)))

        notifier.notify.assert_not_called()

    def test_event_ignored_when_inactive(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        notifier: MagicMock,
    ) -> None:
        """Outside the window events do nothing."""
        daemon.handle(FileChanged(str(dotfiles["zshrc"])))

        assert fake_locker.locked == set()
        notifier.notify.assert_not_called()

    def test_config_directory_ignored(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        notifier: MagicMock,
    ) -> None:
        """Events on the daemon's own config files are ignored."""
        daemon.handle(Tick())

        daemon.handle(FileChanged(str(store.path)))
        daemon.handle(FileChanged(str(store.lock_path)))

        notifier.notify.assert_not_called()

    def test_self_inflicted_events_suppressed(
        self,
        make_daemon: Any,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        notifier: MagicMock,
    ) -> None:
        """Events right after the daemon locked a file are ignored."""
        d = make_daemon(suppression_window=60.0)
        d.start()
        d.handle(Tick())

        d.handle(FileChanged(str(dotfiles["zshrc"])))

        notifier.notify.assert_not_called()

    def test_excluded_path_event_ignored(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        clock: Any,
        notifier: MagicMock,
    ) -> None:
        """An exclusion added after the last tick is honoured for events."""
        daemon.handle(Tick())
        zshrc = str(dotfiles["zshrc"])
        store.update(lambda cfg: ExclusionSet(cfg.exclusions, clock).add(zshrc, 5))
        fake_locker.locked.discard(zshrc)

        daemon.handle(FileChanged(zshrc))

        assert zshrc not in fake_locker.locked
        notifier.notify.assert_not_called()

    def test_watcher_error_is_logged(
        self, daemon: EnforcementDaemon, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Watcher errors are reported without stopping the loop."""
        with caplog.at_level(logging.ERROR, logger=TEST_LOGGER):
            daemon.handle(WatcherFailed(RuntimeError("queue overflow")))

        assert "queue overflow" in caplog.text
        assert daemon.running


class TestReload:
    """Tests for config reload."""

    def test_reload_rewatches_when_active(
        self,
        daemon: EnforcementDaemon,
        store: ConfigStore,
        dotfiles: dict[str, Path],
        watchers: Any,
    ) -> None:
        """Reload while active re-establishes watches from the new config."""
        daemon.handle(Tick())
        store.update(lambda cfg: cfg.remove_path(str(dotfiles["zshrc"])))

        daemon.handle(Reload())

        assert watchers.last.watch_calls[-1] == [str(dotfiles["nvim"])]
        assert daemon.config.managed_paths == [str(dotfiles["nvim"])]

    def test_reload_failure_keeps_previous_config(
        self, daemon: EnforcementDaemon, store: ConfigStore
    ) -> None:
        """A broken config file leaves the previous config in effect."""
        previous = daemon.config
        store.path.write_text("managed_paths = [")

        daemon.handle(Reload())

        assert daemon.config == previous

    def test_sighup_posts_reload(self, daemon: EnforcementDaemon, watchers: Any) -> None:
        """SIGHUP is translated into a reload message."""
        daemon.handle(Tick())
        daemon._handle_signal(signal.SIGHUP, None)
        daemon.request_shutdown()

        daemon.run_pending()

        assert len(watchers.last.watch_calls) == 2


class TestTermination:
    """Tests for shutdown paths."""

    def test_terminate_unlocks_everything(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        timers: Any,
    ) -> None:
        """Terminate unlocks all managed paths and stops the loop."""
        daemon.handle(Tick())

        daemon.handle(Terminate())

        assert fake_locker.locked == set()
        assert daemon.running is False
        assert daemon.state.active is False
        assert timers.last.cancelled

    def test_terminate_when_inactive_still_unlocks(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
    ) -> None:
        """Locks left over from an earlier run are released on terminate."""
        fake_locker.lock(str(dotfiles["zshrc"]))

        daemon.handle(Terminate())

        assert fake_locker.locked == set()

    def test_shutdown_leaves_locks(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        dotfiles: dict[str, Path],
    ) -> None:
        """A programmatic shutdown stops the loop without unlocking."""
        daemon.handle(Tick())

        daemon.handle(Shutdown())

        assert daemon.running is False
        assert fake_locker.locked == _files(dotfiles, "zshrc", "init_lua", "plugins")

    def test_requests_processed_in_order(
        self,
        daemon: EnforcementDaemon,
        fake_locker: Any,
        watchers: Any,
    ) -> None:
        """Queued reload and terminate requests run in posting order."""
        daemon.handle(Tick())
        daemon.request_reload()
        daemon.request_terminate()
        daemon.request_reload()

        handled = daemon.run_pending()

        assert handled == 2
        assert len(watchers.last.watch_calls) == 2
        assert fake_locker.locked == set()
        assert daemon.running is False

    def test_run_processes_terminate_and_removes_pid(
        self,
        make_daemon: Any,
        fake_locker: Any,
        dotfiles: dict[str, Path],
        tmp_path: Path,
        watchers: Any,
    ) -> None:
        """run() handles a queued SIGTERM, unlocks, stops the watcher and cleans up."""
        pid_path = tmp_path / "state" / "daemon.pid"
        d = make_daemon(pid_path=pid_path)
        fake_locker.lock(str(dotfiles["zshrc"]))
        d._handle_signal(signal.SIGTERM, None)

        d.run()

        assert fake_locker.locked == set()
        assert watchers.last.stopped
        assert not pid_path.exists()
