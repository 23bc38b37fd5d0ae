"""Enforcement daemon: message loop, filesystem watcher and process identity."""

from configlock.daemon.loop import DaemonError, DaemonState, EnforcementDaemon
from configlock.daemon.watcher import PathWatcher

__all__ = ["DaemonError", "DaemonState", "EnforcementDaemon", "PathWatcher"]
