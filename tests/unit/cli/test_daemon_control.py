"""Unit tests for the daemon, stop, reload and logs commands."""

import logging
import signal
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from configlock import __version__
from configlock.cli.main import app
from configlock.core.config import ConfigStore
from configlock.core.paths import get_log_path
from configlock.daemon.loop import DaemonError
from configlock.lockers.base import LockResult
from typer.testing import CliRunner

runner = CliRunner()


class TestMain:
    """Tests for global options."""

    def test_version(self) -> None:
        """--version prints the version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"configlock version {__version__}" in result.output

    def test_help_lists_commands(self) -> None:
        """--help lists every command."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("init", "add", "rm", "temp-unlock", "list", "status", "daemon"):
            assert command in result.output


class TestDaemonCommand:
    """Tests for configlock daemon command."""

    @pytest.fixture
    def cli_logger(self) -> logging.Logger:
        return logging.getLogger("tests.configlock.cli")

    @patch("configlock.cli.commands.daemon.running_daemon_pid", return_value=4242)
    def test_already_running(self, mock_pid: MagicMock, cli_store: ConfigStore) -> None:
        """A second daemon refuses to start."""
        result = runner.invoke(app, ["daemon"])

        assert result.exit_code == 1
        assert "already running" in result.output

    @patch("configlock.cli.commands.daemon.EnforcementDaemon")
    @patch("configlock.cli.commands.daemon.configure_logging")
    def test_runs_daemon(
        self,
        mock_logging: MagicMock,
        mock_daemon: MagicMock,
        cli_store: ConfigStore,
        cli_logger: logging.Logger,
    ) -> None:
        """The daemon runs in the foreground with verbose logging on request."""
        mock_logging.return_value = cli_logger

        result = runner.invoke(app, ["-v", "daemon", "--quiet"])

        assert result.exit_code == 0, result.output
        mock_logging.assert_called_once_with(verbose=True, foreground=False)
        mock_daemon.return_value.run.assert_called_once_with()
        assert mock_daemon.call_args.kwargs["pid_path"].name == "daemon.pid"

    @patch("configlock.cli.commands.daemon.EnforcementDaemon")
    @patch("configlock.cli.commands.daemon.configure_logging")
    def test_startup_failure(
        self,
        mock_logging: MagicMock,
        mock_daemon: MagicMock,
        cli_store: ConfigStore,
        cli_logger: logging.Logger,
    ) -> None:
        """Startup errors exit with status 1."""
        mock_logging.return_value = cli_logger
        mock_daemon.return_value.run.side_effect = DaemonError("Config not found")

        result = runner.invoke(app, ["daemon"])

        assert result.exit_code == 1
        assert "Config not found" in result.output


class TestStopCommand:
    """Tests for configlock stop command."""

    def test_without_daemon_unlocks_directly(
        self, cli_store: ConfigStore, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """Without a daemon every managed file is unlocked by the command."""
        for key in ("zshrc", "init_lua", "plugins"):
            fake_locker.lock(str(dotfiles[key]))

        result = runner.invoke(app, ["stop"])

        assert result.exit_code == 0, result.output
        assert fake_locker.locked == set()
        assert "not running" in result.output

    @patch("configlock.cli.commands.stop.running_daemon_pid", return_value=None)
    @patch("configlock.cli.commands.stop.signal_daemon", return_value=True)
    def test_signals_daemon(
        self,
        mock_signal: MagicMock,
        mock_pid: MagicMock,
        cli_store: ConfigStore,
        fake_locker: Any,
    ) -> None:
        """A running daemon gets SIGTERM and does the unlocking itself."""
        result = runner.invoke(app, ["stop"])

        assert result.exit_code == 0, result.output
        mock_signal.assert_called_once_with(signal.SIGTERM)
        assert "Daemon stopped" in result.output
        assert fake_locker.calls == []

    def test_unlock_failure(
        self, cli_store: ConfigStore, fake_locker: Any, dotfiles: dict[str, Path]
    ) -> None:
        """Files that cannot be unlocked make the command fail."""
        fake_locker.unlock = lambda path: LockResult(path=path, success=False, error="EPERM")

        result = runner.invoke(app, ["stop"])

        assert result.exit_code == 1
        assert "could not be unlocked" in result.output


class TestReloadCommand:
    """Tests for configlock reload command."""

    def test_without_daemon(self, cli_env: Any) -> None:
        """Reload fails when no daemon is running."""
        result = runner.invoke(app, ["reload"])

        assert result.exit_code == 1
        assert "not running" in result.output

    @patch("configlock.cli.commands.reload.signal_daemon", return_value=True)
    def test_sends_sighup(self, mock_signal: MagicMock, cli_env: Any) -> None:
        """Reload sends SIGHUP."""
        result = runner.invoke(app, ["reload"])

        assert result.exit_code == 0
        mock_signal.assert_called_once_with(signal.SIGHUP)


class TestLogsCommand:
    """Tests for configlock logs command."""

    def test_missing_log(self, cli_env: Any) -> None:
        """Without a log file the command fails."""
        result = runner.invoke(app, ["logs"])

        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_tail(self, cli_env: Any) -> None:
        """The last lines of the log are printed."""
        log_path = get_log_path()
        log_path.parent.mkdir(parents=True)
        log_path.write_text("".join(f"[INFO] entry {i}\n" for i in range(10)))

        result = runner.invoke(app, ["logs", "-n", "2"])

        assert result.exit_code == 0
        assert "[INFO] entry 9" in result.output
        assert "[INFO] entry 8" in result.output
        assert "entry 7" not in result.output
