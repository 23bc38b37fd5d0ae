"""Filesystem change notifications for managed paths.

PathWatcher wraps a watchdog Observer. Directories are watched
recursively; a file is watched through its parent directory so that
deletion and re-creation are seen as well. Events are forwarded as plain
path strings to a callback, which the daemon turns into queue messages.
"""

import logging
import os
from collections.abc import Callable

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from configlock.lockers.base import resolve_path

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]

# Seconds to wait for the observer thread when stopping
_JOIN_TIMEOUT: float = 5.0


class _ForwardingHandler(FileSystemEventHandler):
    """Forward content-affecting events to a callback.

    Open and close-without-write events are dropped. Moves report both
    the source and the destination path.
    """

    _FORWARDED = frozenset(
        {
            EVENT_TYPE_CREATED,
            EVENT_TYPE_MODIFIED,
            EVENT_TYPE_MOVED,
            EVENT_TYPE_DELETED,
            EVENT_TYPE_CLOSED,
        }
    )

    def __init__(self, on_change: ChangeCallback, on_error: ErrorCallback) -> None:
        super().__init__()
        self._on_change = on_change
        self._on_error = on_error

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in self._FORWARDED:
            return
        # An exception escaping here would kill the observer thread
        try:
            self._on_change(os.fsdecode(event.src_path))
            dest_path = getattr(event, "dest_path", "")
            if dest_path:
                self._on_change(os.fsdecode(dest_path))
        except Exception as e:  # noqa: BLE001
            self._on_error(e)


class PathWatcher:
    """Subscribes to change notifications for a set of managed paths.

    Attributes:
        watch_set: Managed paths whose watches were established.
    """

    def __init__(
        self,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize PathWatcher.

        Args:
            on_change: Called with the path of every forwarded event.
            on_error: Called with exceptions raised while forwarding.
            observer_factory: Builds the watchdog observer.

        Raises:
            OSError: If the platform observer cannot be created.
        """
        self._handler = _ForwardingHandler(on_change, on_error)
        self._observer = observer_factory()
        self._watches: dict[str, ObservedWatch] = {}
        self.watch_set: set[str] = set()

    def start(self) -> None:
        """Start the observer thread.

        Raises:
            OSError: If the observer cannot be started.
            RuntimeError: If the observer was already started.
        """
        self._observer.start()

    def is_alive(self) -> bool:
        """Check whether the observer thread is running."""
        return self._observer.is_alive()

    def watch(self, paths: list[str]) -> set[str]:
        """Replace all watches with watches for the given managed paths.

        A path that cannot be watched is logged and left out; periodic
        sweeps still cover it.

        Args:
            paths: Managed paths to watch.

        Returns:
            The managed paths that are now watched.
        """
        self.clear()
        watched: set[str] = set()

        for path in paths:
            real_path = resolve_path(path)
            if not os.path.exists(real_path):
                logger.warning("Failed to watch %s: path does not exist", path)
                continue

            if os.path.isdir(real_path):
                target, recursive = real_path, True
            else:
                target, recursive = os.path.dirname(real_path), False

            try:
                self._schedule(target, recursive)
            except OSError as e:
                logger.warning("Failed to watch %s: %s", path, e)
                continue
            watched.add(path)

        self.watch_set = watched
        logger.info("Watching %d of %d managed path(s)", len(watched), len(paths))
        return watched

    def clear(self) -> None:
        """Remove every watch."""
        for target, watch in list(self._watches.items()):
            try:
                self._observer.unschedule(watch)
            except (KeyError, OSError) as e:
                logger.debug("Failed to remove watch on %s: %s", target, e)
        self._watches.clear()
        self.watch_set = set()

    def stop(self) -> None:
        """Remove every watch and stop the observer thread."""
        self.clear()
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=_JOIN_TIMEOUT)

    def _schedule(self, target: str, recursive: bool) -> None:
        """Watch a directory once, upgrading to recursive if needed."""
        existing = self._watches.get(target)
        if existing is not None:
            if existing.is_recursive or not recursive:
                return
            self._observer.unschedule(existing)
        self._watches[target] = self._observer.schedule(
            self._handler, target, recursive=recursive
        )
