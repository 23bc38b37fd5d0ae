"""Enforcement daemon.

All state lives in EnforcementDaemon and is touched only by the thread
running its message loop. Everything else (the watchdog observer thread,
the tick timer, signal handlers) communicates with the loop by posting
messages to a SimpleQueue, which is safe to call from a signal handler.

Per tick the daemon reloads the config, drops expired exclusions and
evaluates the schedule:

    outside -> inside   establish watches, lock every managed path
    inside  -> inside   verify locks, re-apply where missing
    inside  -> outside  remove watches, unlock every managed path
    outside -> outside  wait for the window to open

The next tick is armed 30 seconds out while the window is open, and at the
next window start (capped at the idle recheck interval) while it is closed.
"""

import logging
import os
import queue
import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from types import FrameType

from configlock.core.config import ConfigError, ConfigStore
from configlock.core.exclusions import Clock, ExclusionSet, local_now
from configlock.core.log import shutdown_logging
from configlock.core.schedule import ScheduleEvaluator, evaluator_for
from configlock.daemon.process import remove_pid, write_pid
from configlock.daemon.watcher import PathWatcher
from configlock.lockers.base import (
    Locker,
    LockMethod,
    PathMissingError,
    UnsupportedPlatformError,
    expand_path,
    resolve_path,
)
from configlock.models.config import Config
from configlock.utils.fileutil import in_vcs_dir, is_within
from configlock.utils.notify import Notifier

SWEEP_INTERVAL: float = 30.0
IDLE_RECHECK_INTERVAL: float = 300.0
# Events on a file are ignored this long after the daemon locked it itself
SUPPRESSION_WINDOW: float = 2.0
# Upper bound for a single blocking queue read
_POLL_INTERVAL: float = 1.0


class DaemonError(Exception):
    """Raised when the daemon cannot start."""


@dataclass(frozen=True, slots=True)
class Tick:
    """Timer expiry: re-evaluate the window and enforce."""


@dataclass(frozen=True, slots=True)
class FileChanged:
    """A watched path reported a change."""

    path: str


@dataclass(frozen=True, slots=True)
class WatcherFailed:
    """The watcher hit an error while forwarding events."""

    error: Exception


@dataclass(frozen=True, slots=True)
class Reload:
    """Reload the config (SIGHUP)."""


@dataclass(frozen=True, slots=True)
class Terminate:
    """Unlock everything and exit (SIGTERM, SIGINT)."""

    reason: str = "terminate"


@dataclass(frozen=True, slots=True)
class Shutdown:
    """Stop the loop without touching lock state."""


Message = Tick | FileChanged | WatcherFailed | Reload | Terminate | Shutdown

WatcherFactory = Callable[[Callable[[str], None], Callable[[Exception], None]], PathWatcher]
TimerFactory = Callable[..., threading.Timer]


@dataclass
class DaemonState:
    """Observable daemon state.

    Attributes:
        active: Whether the enforcement window is open.
        watch_set: Managed paths with an established watch.
        next_tick: Delay in seconds the current timer was armed with.
    """

    active: bool = False
    watch_set: set[str] = field(default_factory=set)
    next_tick: float | None = None


class EnforcementDaemon:
    """Long-running enforcement loop.

    Example:
        >>> daemon = EnforcementDaemon(ConfigStore(locker=locker), locker)
        >>> daemon.run()  # blocks until SIGTERM/SIGINT
    """

    def __init__(
        self,
        store: ConfigStore,
        locker: Locker,
        *,
        notifier: Notifier | None = None,
        logger: logging.Logger | None = None,
        clock: Clock = local_now,
        watcher_factory: WatcherFactory = PathWatcher,
        timer_factory: TimerFactory = threading.Timer,
        sweep_interval: float = SWEEP_INTERVAL,
        idle_recheck_interval: float = IDLE_RECHECK_INTERVAL,
        suppression_window: float = SUPPRESSION_WINDOW,
        pid_path: Path | None = None,
    ) -> None:
        """Initialize EnforcementDaemon.

        Args:
            store: Config persistence. Reloaded on every tick.
            locker: Lock primitive for the running platform.
            notifier: Desktop notifier for manual change alerts.
            logger: Logger to report through. Its handlers are flushed
                and closed on termination.
            clock: Source of the current local time.
            watcher_factory: Builds the path watcher from the change and
                error callbacks.
            timer_factory: Builds the tick timer, threading.Timer signature.
            sweep_interval: Seconds between sweeps inside the window.
            idle_recheck_interval: Longest sleep outside the window.
            suppression_window: Seconds to ignore events on a file after
                locking it.
            pid_path: Where run() records the process id. None skips it.
        """
        self._store = store
        self._locker = locker
        self._notifier = notifier or Notifier()
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock
        self._watcher_factory = watcher_factory
        self._timer_factory = timer_factory
        self._sweep_interval = sweep_interval
        self._idle_recheck_interval = idle_recheck_interval
        self._suppression_window = suppression_window
        self._pid_path = pid_path

        self.state = DaemonState()
        self._queue: queue.SimpleQueue[Message] = queue.SimpleQueue()
        self._config: Config | None = None
        self._evaluator: ScheduleEvaluator | None = None
        self._watcher: PathWatcher | None = None
        self._timer: threading.Timer | None = None
        self._running = False
        self._recently_locked: dict[str, float] = {}
        self._lock_methods: dict[str, LockMethod] = {}

    @property
    def config(self) -> Config:
        """The config currently in effect."""
        if self._config is None:
            raise DaemonError("daemon has not been started")
        return self._config

    @property
    def running(self) -> bool:
        """Whether the message loop is accepting messages."""
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Load the config and start the watcher.

        Raises:
            DaemonError: If the config cannot be loaded or the watcher
                cannot be created.
        """
        try:
            config = self._store.load()
        except ConfigError as e:
            raise DaemonError(f"failed to load config: {e}") from e
        self._apply_config(config)

        try:
            self._watcher = self._watcher_factory(self._post_change, self._post_error)
            self._watcher.start()
        except (OSError, RuntimeError) as e:
            raise DaemonError(f"failed to create watcher: {e}") from e

        self._running = True
        self._log.info(
            "Daemon started, %d managed path(s)", len(config.managed_paths)
        )

    def run(self) -> None:
        """Start the daemon and process messages until told to stop.

        Raises:
            DaemonError: If startup fails.
        """
        self.start()
        if self._pid_path is not None:
            write_pid(self._pid_path)
        previous_handlers = self._install_signal_handlers()
        self.post(Tick())

        try:
            while self._running:
                try:
                    message = self._queue.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                self.handle(message)
        finally:
            self._restore_signal_handlers(previous_handlers)
            self.close()
            if self._pid_path is not None:
                remove_pid(self._pid_path)

    def run_pending(self) -> int:
        """Process queued messages without blocking.

        Returns:
            Number of messages handled.
        """
        handled = 0
        while self._running:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            self.handle(message)
            handled += 1
        return handled

    def close(self) -> None:
        """Cancel the timer and stop the watcher. Lock state is untouched."""
        self._running = False
        self._cancel_timer()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self.state.watch_set = set()

    def post(self, message: Message) -> None:
        """Queue a message for the loop. Safe from any thread or signal handler."""
        self._queue.put(message)

    def request_shutdown(self) -> None:
        """Stop the loop without unlocking anything."""
        self.post(Shutdown())

    def request_reload(self) -> None:
        """Reload the config and re-establish watches."""
        self.post(Reload())

    def request_terminate(self) -> None:
        """Unlock every managed path and stop the loop."""
        self.post(Terminate())

    def handle(self, message: Message) -> None:
        """Process a single message on the loop thread."""
        try:
            if isinstance(message, Tick):
                self._on_tick()
            elif isinstance(message, FileChanged):
                self._on_file_changed(message.path)
            elif isinstance(message, WatcherFailed):
                self._log.error("Watcher error: %s", message.error)
            elif isinstance(message, Reload):
                self._on_reload()
            elif isinstance(message, Terminate):
                self._on_terminate(message.reason)
            elif isinstance(message, Shutdown):
                self._log.info("Daemon shutting down")
                self._running = False
        except (OSError, ConfigError) as e:
            self._log.exception("Failed to process %s: %s", type(message).__name__, e)

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------

    def _on_tick(self) -> None:
        """Evaluate the window and run one step of the state machine."""
        self._sync_watches(self._reload_config())
        self._clean_exclusions()

        assert self._evaluator is not None
        now = self._clock()
        if self._evaluator.is_within_window(now):
            if not self.state.active:
                self._activate()
            else:
                self._ensure_watcher()
                self._sweep(verify=True)
            self._arm_timer(self._sweep_interval)
            return

        if self.state.active:
            self._deactivate()
        else:
            self._log.debug("Outside lock hours, skipping enforcement")
        self._arm_timer(self._idle_delay())

    def _on_file_changed(self, path: str) -> None:
        """Map a change event to managed paths and re-apply their locks."""
        if not self.state.active or self._is_config_path(path):
            return
        if self._is_suppressed(path):
            self._log.debug("Ignoring event on recently locked %s", path)
            return

        if not self._match_managed(path):
            return
        # A CLI command may have just added an exclusion for this path
        self._sync_watches(self._reload_config())

        exclusions = self._exclusions()
        try:
            for managed, real_managed in self._match_managed(path):
                if exclusions.is_excluded(managed) or exclusions.is_excluded(path):
                    self._log.debug("Change on excluded path %s, ignoring", managed)
                    continue

                self._log.warning("Event detected on locked path %s, re-applying lock", managed)
                self._notifier.notify(
                    "configlock",
                    f"Manual change detected on {managed}, re-locking",
                )
                for target in self._event_targets(managed, real_managed, path):
                    if not exclusions.is_excluded(target):
                        self._lock_file(target)
        except UnsupportedPlatformError as e:
            self._log.error("Cannot re-lock after change to %s: %s", path, e)

    def _on_reload(self) -> None:
        self._log.info("Reload requested")
        if self._reload_config() is None:
            return
        if self.state.active:
            self._establish_watches()

    def _on_terminate(self, reason: str) -> None:
        """Unlock every managed path, stop everything and end the loop."""
        self._log.info("Graceful shutdown initiated (%s), unlocking all paths", reason)
        self._cancel_timer()
        self._teardown_watches()
        self._unlock_all()
        self.state.active = False
        self._running = False
        self._log.info("Daemon stopped")
        shutdown_logging(self._log)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _activate(self) -> None:
        self._log.info("Enforcement window opened, locking managed paths")
        self.state.active = True
        self._establish_watches()
        self._sweep(verify=False)

    def _deactivate(self) -> None:
        self._log.info("Enforcement window closed, unlocking managed paths")
        self._teardown_watches()
        self.state.active = False
        self._unlock_all()

    def _establish_watches(self) -> None:
        if self._watcher is None:
            return
        self.state.watch_set = self._watcher.watch(list(self.config.managed_paths))

    def _sync_watches(self, previous_paths: list[str] | None) -> None:
        """Re-watch if a reload changed the managed path list while active."""
        if (
            self.state.active
            and previous_paths is not None
            and previous_paths != self.config.managed_paths
        ):
            self._log.info("Managed paths changed, re-establishing watches")
            self._establish_watches()

    def _teardown_watches(self) -> None:
        if self._watcher is not None:
            self._watcher.clear()
        self.state.watch_set = set()

    def _ensure_watcher(self) -> None:
        """Replace the watcher if its observer thread has died."""
        if self._watcher is None or self._watcher.is_alive():
            return
        self._log.error("Watcher stopped unexpectedly, restarting it")
        self._watcher.stop()
        try:
            self._watcher = self._watcher_factory(self._post_change, self._post_error)
            self._watcher.start()
        except (OSError, RuntimeError) as e:
            self._log.error("Failed to restart watcher, relying on sweeps: %s", e)
            self._watcher = None
            self.state.watch_set = set()
            return
        self._establish_watches()

    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------

    def _sweep(self, *, verify: bool) -> None:
        """Lock every managed path that is not excluded.

        Args:
            verify: Query the lock state first and only lock where it is
                missing. Without it every file is locked unconditionally.
        """
        self._prune_suppressed()
        exclusions = self._exclusions()
        try:
            for managed in self.config.managed_paths:
                if exclusions.is_excluded(managed):
                    self._log.debug("Skipping temporarily excluded path %s", managed)
                    continue
                if not os.path.lexists(managed):
                    self._log.warning("Managed path no longer exists: %s", managed)
                    continue
                for target in expand_path(managed):
                    if exclusions.is_excluded(target):
                        continue
                    if verify:
                        self._verify_file(target)
                    else:
                        self._lock_file(target)
        except UnsupportedPlatformError as e:
            self._log.error("Sweep aborted: %s", e)

    def _verify_file(self, target: str) -> None:
        try:
            if self._locker.is_locked(target):
                return
        except PathMissingError as e:
            self._log.warning("Cannot verify %s: %s", target, e)
            return

        if self._lock_methods.get(target) == LockMethod.FALLBACK:
            self._log.debug("Re-applying fallback lock on %s", target)
        else:
            self._log.warning("Lock removed from %s, re-applying", target)
        self._lock_file(target)

    def _lock_file(self, target: str) -> None:
        result = self._locker.lock(target)
        stamp = time.monotonic()
        self._recently_locked[target] = stamp
        self._recently_locked[result.path] = stamp
        if not result.success:
            self._log.error("Failed to lock %s: %s", target, result.error)
            return
        if result.method is not None:
            self._lock_methods[target] = result.method

    def _unlock_all(self) -> None:
        """Unlock every managed path, exclusions notwithstanding."""
        try:
            for managed in self.config.managed_paths:
                if not os.path.lexists(managed):
                    self._log.warning("Managed path no longer exists: %s", managed)
                    continue
                for target in expand_path(managed):
                    result = self._locker.unlock(target)
                    if not result.success:
                        self._log.error("Failed to unlock %s: %s", target, result.error)
        except UnsupportedPlatformError as e:
            self._log.error("Unlock pass aborted: %s", e)
        self._lock_methods.clear()

    def _match_managed(self, path: str) -> list[tuple[str, str]]:
        """Managed paths equal to or containing path, with their resolved form."""
        matches: list[tuple[str, str]] = []
        for managed in self.config.managed_paths:
            real_managed = resolve_path(managed)
            if is_within(path, managed) or is_within(path, real_managed):
                matches.append((managed, real_managed))
        return matches

    def _event_targets(self, managed: str, real_managed: str, path: str) -> list[str]:
        """Files to re-lock after a change at path under a managed path."""
        if not os.path.isdir(real_managed):
            return [managed]
        if path in (managed, real_managed):
            return expand_path(managed)
        if os.path.isfile(path) and not in_vcs_dir(path):
            return [path]
        return []

    # ------------------------------------------------------------------
    # Config and exclusions
    # ------------------------------------------------------------------

    def _apply_config(self, config: Config) -> None:
        previous = self._config
        self._config = config
        if previous is not None and self._evaluator is not None:
            if previous.schedule == config.schedule:
                return
        self._evaluator = evaluator_for(config.schedule)
        if not self._evaluator.valid:
            self._log.warning("Schedule is invalid, treating as outside the window")

    def _reload_config(self) -> list[str] | None:
        """Reload the config from disk, keeping the current one on failure.

        Returns:
            The previous managed path list, or None if loading failed.
        """
        previous = list(self.config.managed_paths)
        try:
            config = self._store.load()
        except ConfigError as e:
            self._log.error("Failed to reload config, keeping previous: %s", e)
            return None
        self._apply_config(config)
        return previous

    def _clean_exclusions(self) -> None:
        """Drop expired exclusions and persist the result."""
        probe = ExclusionSet(dict(self.config.exclusions), self._clock)
        if not probe.clean_expired():
            return

        try:
            config = self._store.update(
                lambda cfg: ExclusionSet(cfg.exclusions, self._clock).clean_expired()
            )
        except ConfigError as e:
            self._log.error("Failed to persist expired exclusions: %s", e)
            self.config.exclusions = probe.entries
            return
        self._apply_config(config)

    def _exclusions(self) -> ExclusionSet:
        return ExclusionSet(self.config.exclusions, self._clock)

    def _is_config_path(self, path: str) -> bool:
        return path == str(self._store.path) or is_within(path, str(self._store.config_dir))

    def _prune_suppressed(self) -> None:
        cutoff = time.monotonic() - self._suppression_window
        for path, stamp in list(self._recently_locked.items()):
            if stamp <= cutoff:
                del self._recently_locked[path]

    def _is_suppressed(self, path: str) -> bool:
        stamp = self._recently_locked.get(path)
        if stamp is None:
            return False
        if time.monotonic() - stamp < self._suppression_window:
            return True
        del self._recently_locked[path]
        return False

    # ------------------------------------------------------------------
    # Timer and signals
    # ------------------------------------------------------------------

    def _idle_delay(self) -> float:
        """Seconds until the next tick while outside the window."""
        assert self._evaluator is not None
        delay = self._evaluator.time_until_next_window(self._clock()).total_seconds()
        return min(max(delay, 1.0), self._idle_recheck_interval)

    def _arm_timer(self, delay: float) -> None:
        self._cancel_timer()
        timer = self._timer_factory(delay, self.post, args=(Tick(),))
        timer.daemon = True
        timer.start()
        self._timer = timer
        self.state.next_tick = delay

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state.next_tick = None

    def _post_change(self, path: str) -> None:
        self.post(FileChanged(path))

    def _post_error(self, error: Exception) -> None:
        self.post(WatcherFailed(error))

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        if signum == signal.SIGHUP:
            self.post(Reload())
        else:
            self.post(Terminate(signal.Signals(signum).name))

    def _install_signal_handlers(self) -> dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            self._log.debug("Not on the main thread, signal handlers not installed")
            return {}
        return {
            sig: signal.signal(sig, self._handle_signal)
            for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)
        }

    def _restore_signal_handlers(self, previous: dict[int, object]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
