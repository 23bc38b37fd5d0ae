"""macOS lock primitive using the BSD system-immutable flag."""

from configlock.lockers.base import Locker


class ChflagsLocker(Locker):
    """Locker backed by chflags schg / chflags noschg.

    The system-immutable flag can only be cleared by root outside of
    single-user mode at securelevel > 0. When chflags fails, the base
    class falls back to read-only permission bits.
    """

    @property
    def name(self) -> str:
        """Return chflags as the primary mechanism."""
        return "chflags"

    def _lock_command(self, path: str) -> list[str]:
        return ["chflags", "schg", path]

    def _unlock_command(self, path: str) -> list[str]:
        return ["chflags", "noschg", path]

    def _query_command(self, path: str) -> list[str]:
        return ["stat", "-f", "%Sf", path]

    def _parse_query(self, output: str) -> bool:
        # stat prints a comma-separated flag list, e.g. "schg,uchg" or "-"
        flags = {flag.strip() for flag in output.strip().split(",")}
        return "schg" in flags
