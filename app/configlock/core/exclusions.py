"""Temporary exclusions from enforcement.

An exclusion exempts one path from enforcement until an expiry instant.
Exclusions are stored in the config as ISO-8601 strings and are edited in
place through ExclusionSet.

Unlike schedule evaluation, which fails toward "unlocked", anything that
cannot be interpreted here fails toward enforcement: an unparseable expiry
never exempts a path.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def parse_expiry(value: str) -> datetime | None:
    """Parse a stored expiry timestamp.

    Naive timestamps are interpreted as local time.

    Args:
        value: ISO-8601 timestamp.

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


class ExclusionSet:
    """Mapping of path to expiry, backed by the config's exclusions dict.

    Mutations are applied to the dictionary passed in, so the owning
    Config sees them and can be saved afterwards.

    Attributes:
        entries: The underlying path -> ISO-8601 expiry mapping.
    """

    def __init__(self, entries: dict[str, str], clock: Clock = local_now) -> None:
        """Initialize ExclusionSet.

        Args:
            entries: Exclusion mapping to operate on (mutated in place).
            clock: Source of the current time. Must return aware datetimes.
        """
        self.entries = entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.is_excluded(path)

    def add(self, path: str, minutes: int) -> datetime:
        """Exclude a path for a number of minutes, replacing any existing entry.

        Args:
            path: Absolute path to exclude.
            minutes: Duration of the exclusion.

        Returns:
            The expiry instant.
        """
        expiry = (self._clock() + timedelta(minutes=minutes)).replace(microsecond=0)
        self.entries[path] = expiry.isoformat()
        return expiry

    def remove(self, path: str) -> bool:
        """Drop the exclusion for a path.

        Returns:
            True if an entry was removed.
        """
        return self.entries.pop(path, None) is not None

    def expiry(self, path: str) -> datetime | None:
        """Parsed expiry for a path, None if absent or unparseable."""
        value = self.entries.get(path)
        if value is None:
            return None
        return parse_expiry(value)

    def is_excluded(self, path: str) -> bool:
        """Check whether a path is currently exempt from enforcement.

        Returns:
            False if there is no entry, the expiry cannot be parsed, or the
            expiry is not in the future.
        """
        expiry = self.expiry(path)
        if expiry is None:
            return False
        return expiry > self._clock()

    def remaining(self, path: str) -> timedelta | None:
        """Time left on a path's exclusion, None if it is not excluded."""
        expiry = self.expiry(path)
        if expiry is None:
            return None
        left = expiry - self._clock()
        return left if left > timedelta(0) else None

    def active(self) -> dict[str, datetime]:
        """All exclusions still in effect, keyed by path."""
        now = self._clock()
        result: dict[str, datetime] = {}
        for path in self.entries:
            expiry = self.expiry(path)
            if expiry is not None and expiry > now:
                result[path] = expiry
        return result

    def clean_expired(self) -> bool:
        """Remove expired and unparseable entries.

        Returns:
            True if at least one entry was removed.
        """
        now = self._clock()
        stale: list[str] = []
        for path, value in self.entries.items():
            expiry = parse_expiry(value)
            if expiry is None:
                logger.warning("Dropping exclusion for %s with unreadable expiry %r", path, value)
                stale.append(path)
            elif now > expiry:
                stale.append(path)

        for path in stale:
            del self.entries[path]
            logger.info("Temporary exclusion expired: %s", path)

        return bool(stale)
