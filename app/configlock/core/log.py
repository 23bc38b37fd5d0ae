"""Logging setup for configlock processes.

Modules log through logging.getLogger(__name__). The process entry point
(the daemon command) configures handlers once with configure_logging() and
passes the returned logger to the daemon, which flushes and closes the
handlers through shutdown_logging() on its way out.
"""

import logging
from pathlib import Path

from rich.logging import RichHandler

from configlock.core.paths import get_log_path
from configlock.utils.formatting import err_console

LOGGER_NAME = "configlock"

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    log_path: Path | None = None,
    *,
    verbose: bool = False,
    foreground: bool = True,
) -> logging.Logger:
    """Configure the configlock logger hierarchy.

    Args:
        log_path: Log file path. If None, uses the default state-dir log.
        verbose: Log at DEBUG instead of INFO.
        foreground: Also log to stderr through Rich.

    Returns:
        The "configlock" root logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    shutdown_logging(logger)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    path = log_path or get_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        err_console.print(f"[warning]Warning:[/] cannot open log file {path}: {e}")
    else:
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    if foreground:
        logger.addHandler(
            RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
        )

    return logger


def shutdown_logging(logger: logging.Logger | None = None) -> None:
    """Flush, close and detach all handlers of the configlock logger."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)


def read_log_tail(lines: int, log_path: Path | None = None) -> list[str]:
    """Read the last lines of the daemon log.

    Args:
        lines: Number of lines to return.
        log_path: Log file path. If None, uses the default state-dir log.

    Returns:
        Up to `lines` lines, oldest first. Empty if the log does not exist.
    """
    path = log_path or get_log_path()
    if not path.exists():
        return []
    with path.open(encoding="utf-8", errors="replace") as f:
        content = f.read().splitlines()
    return content[-lines:] if lines > 0 else []
