"""Desktop notification delivery.

Notifications are best-effort: every failure is logged and reported as
False, never raised.
"""

import logging
import os
import platform

from configlock.utils.shell import try_command

logger = logging.getLogger(__name__)

# Seconds to wait for a notification helper before giving up
_NOTIFY_TIMEOUT: float = 5.0


class Notifier:
    """Sends desktop notifications through the platform's helper tools.

    Linux uses notify-send, falling back to a direct D-Bus call via gdbus.
    macOS uses osascript. Other platforms always report failure.

    Attributes:
        app_name: Application name shown by the notification daemon.
    """

    def __init__(self, app_name: str = "configlock", system: str | None = None) -> None:
        self.app_name = app_name
        self._system = system or platform.system()

    def notify(self, title: str, message: str) -> bool:
        """Send a notification.

        Args:
            title: Notification summary line.
            message: Notification body.

        Returns:
            True if a helper accepted the notification, False otherwise.
        """
        if self._system == "Linux":
            delivered = self._notify_linux(title, message)
        elif self._system == "Darwin":
            delivered = self._notify_macos(title, message)
        else:
            logger.debug("Notifications not supported on %s", self._system)
            return False

        if not delivered:
            if not os.environ.get("DISPLAY") and not os.environ.get("WAYLAND_DISPLAY"):
                logger.debug("No display server available for notification: %s", title)
            else:
                logger.warning("Failed to deliver notification: %s", title)
        return delivered

    def _notify_linux(self, title: str, message: str) -> bool:
        result = try_command(
            ["notify-send", "-a", self.app_name, "-u", "critical", "-t", "5000", title, message],
            timeout=_NOTIFY_TIMEOUT,
        )
        if result.success:
            return True

        result = try_command(
            [
                "gdbus",
                "call",
                "--session",
                "--dest=org.freedesktop.Notifications",
                "--object-path=/org/freedesktop/Notifications",
                "--method=org.freedesktop.Notifications.Notify",
                self.app_name,
                "0",
                "dialog-warning",
                title,
                message,
                "[]",
                "{}",
                "5000",
            ],
            timeout=_NOTIFY_TIMEOUT,
        )
        return result.success

    def _notify_macos(self, title: str, message: str) -> bool:
        script = f"display notification {_applescript_str(message)} with title {_applescript_str(title)}"
        return try_command(["osascript", "-e", script], timeout=_NOTIFY_TIMEOUT).success


def _applescript_str(value: str) -> str:
    """Quote a value as an AppleScript string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
