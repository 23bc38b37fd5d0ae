"""CLI commands for configlock.

This package contains all subcommand implementations.
"""

from configlock.cli.commands import (
    add,
    daemon,
    init,
    listing,
    logs,
    reload,
    rm,
    schedule,
    status,
    stop,
    temp_unlock,
)

__all__ = [
    "add",
    "daemon",
    "init",
    "listing",
    "logs",
    "reload",
    "rm",
    "schedule",
    "status",
    "stop",
    "temp_unlock",
]
