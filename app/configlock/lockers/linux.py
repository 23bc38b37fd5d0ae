"""Linux lock primitive using the ext2-family immutable attribute."""

from configlock.lockers.base import Locker


class ChattrLocker(Locker):
    """Locker backed by chattr +i / chattr -i.

    Setting the attribute needs CAP_LINUX_IMMUTABLE and a filesystem that
    supports it (ext4, btrfs, xfs, ...). Without either, the base class
    falls back to read-only permission bits.
    """

    @property
    def name(self) -> str:
        """Return chattr as the primary mechanism."""
        return "chattr"

    def _lock_command(self, path: str) -> list[str]:
        return ["chattr", "+i", path]

    def _unlock_command(self, path: str) -> list[str]:
        return ["chattr", "-i", path]

    def _query_command(self, path: str) -> list[str]:
        return ["lsattr", "-d", path]

    def _parse_query(self, output: str) -> bool:
        # lsattr prints "----i---------e------- /path/to/file"
        fields = output.split(maxsplit=1)
        if not fields:
            return False
        return "i" in fields[0]
