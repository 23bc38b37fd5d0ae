"""Enforcement schedule evaluation.

A schedule answers two questions for a given instant: is an enforcement
window open, and how long until the next one opens. Two representations
exist:

- A daily time range on selected ISO weekdays (start inclusive, end
  exclusive, minute granularity). Ranges that cross midnight are not
  supported; an end at or before the start never matches.
- A cron expression. The window is "armed" for the minute that matches a
  trigger: the next trigger computed from one minute before the current
  minute must not be later than the current minute.

Malformed schedules never raise during evaluation. They report "outside
the window" so a broken config cannot leave files locked indefinitely.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta

from croniter import croniter

from configlock.models.config import WEEKDAYS, ScheduleConfig

logger = logging.getLogger(__name__)

# Returned by time_until_next_window() when the schedule cannot be evaluated
FALLBACK_DELAY = timedelta(hours=1)

# How many days ahead the time-range scan looks for the next window
_SCAN_DAYS = 8

_DAY_NAMES: dict[int, str] = {
    1: "Mon",
    2: "Tue",
    3: "Wed",
    4: "Thu",
    5: "Fri",
    6: "Sat",
    7: "Sun",
}


class ScheduleEvaluator(ABC):
    """Abstract base class for schedule evaluators."""

    @abstractmethod
    def is_within_window(self, now: datetime) -> bool:
        """Check whether an enforcement window is open at now."""

    @abstractmethod
    def time_until_next_window(self, now: datetime) -> timedelta:
        """Time from now until the next window opens.

        Returns:
            timedelta(0) while a window is open, FALLBACK_DELAY if the
            schedule cannot be evaluated.
        """

    @property
    @abstractmethod
    def valid(self) -> bool:
        """Check whether the schedule parsed successfully."""


class TimeRangeEvaluator(ScheduleEvaluator):
    """Evaluator for a daily start/end time on selected weekdays.

    Attributes:
        days: ISO weekdays on which the window applies.
    """

    def __init__(self, start_time: str, end_time: str, days: list[int]) -> None:
        self.days = frozenset(days)
        self._start = _parse_clock(start_time)
        self._end = _parse_clock(end_time)
        if self._start is None or self._end is None:
            logger.warning("Malformed schedule time range %r-%r", start_time, end_time)

    @property
    def valid(self) -> bool:
        return self._start is not None and self._end is not None

    def is_within_window(self, now: datetime) -> bool:
        if self._start is None or self._end is None:
            return False
        if now.isoweekday() not in self.days:
            return False
        current = time(now.hour, now.minute)
        return self._start <= current < self._end

    def time_until_next_window(self, now: datetime) -> timedelta:
        if self._start is None or self._end is None or not self.days:
            return FALLBACK_DELAY
        if self.is_within_window(now):
            return timedelta(0)

        candidate = now.replace(
            hour=self._start.hour,
            minute=self._start.minute,
            second=0,
            microsecond=0,
        )
        for _ in range(_SCAN_DAYS):
            if candidate.isoweekday() in self.days and now < candidate:
                return candidate - now
            candidate += timedelta(days=1)

        return FALLBACK_DELAY


class CronEvaluator(ScheduleEvaluator):
    """Evaluator for a cron expression.

    The expression marks instants at which the window opens; it is
    considered open for the minute following each trigger.

    Attributes:
        expression: The cron expression.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self._valid = croniter.is_valid(expression)
        if not self._valid:
            logger.warning("Malformed cron expression %r", expression)

    @property
    def valid(self) -> bool:
        return self._valid

    def is_within_window(self, now: datetime) -> bool:
        if not self._valid:
            return False
        minute = now.replace(second=0, microsecond=0)
        try:
            trigger = croniter(self.expression, minute - timedelta(minutes=1)).get_next(datetime)
        except (ValueError, KeyError) as e:
            logger.warning("Cannot evaluate cron expression %r: %s", self.expression, e)
            return False
        return trigger <= minute

    def time_until_next_window(self, now: datetime) -> timedelta:
        if not self._valid:
            return FALLBACK_DELAY
        if self.is_within_window(now):
            return timedelta(0)
        try:
            trigger = croniter(self.expression, now).get_next(datetime)
        except (ValueError, KeyError) as e:
            logger.warning("Cannot evaluate cron expression %r: %s", self.expression, e)
            return FALLBACK_DELAY
        return trigger - now


def evaluator_for(schedule: ScheduleConfig) -> ScheduleEvaluator:
    """Build the evaluator for a schedule config.

    Args:
        schedule: Schedule section of the config.

    Returns:
        CronEvaluator or TimeRangeEvaluator.
    """
    if schedule.cron is not None:
        return CronEvaluator(schedule.cron)
    return TimeRangeEvaluator(
        schedule.start_time or "",
        schedule.end_time or "",
        schedule.days or [],
    )


def _parse_clock(value: str) -> time | None:
    """Parse "HH:MM" into a time, None if malformed."""
    match = re.fullmatch(r"(\d{1,2}):(\d{2})", value.strip())
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


# =============================================================================
# Parsing and formatting helpers for the CLI
# =============================================================================


def normalize_time(value: str) -> str:
    """Normalize a loosely written time of day to "HH:MM".

    Accepts "HH:MM", "H", "HH", "HMM" and "HHMM".

    Args:
        value: Time as typed by the user.

    Returns:
        Normalized "HH:MM" string.

    Raises:
        ValueError: If the value is not a valid time.
    """
    value = value.strip()
    if ":" in value:
        parsed = _parse_clock(value)
        if parsed is None:
            msg = f"invalid time format: {value}"
            raise ValueError(msg)
        return parsed.strftime("%H:%M")

    digits = re.sub(r"\D", "", value)
    if len(digits) in (1, 2):
        hour, minute = digits, "00"
    elif len(digits) in (3, 4):
        hour, minute = digits[:-2], digits[-2:]
    else:
        msg = f"invalid time format: {value}"
        raise ValueError(msg)

    parsed = _parse_clock(f"{hour}:{minute}")
    if parsed is None:
        msg = f"invalid time: {value}"
        raise ValueError(msg)
    return parsed.strftime("%H:%M")


def parse_time_range(value: str) -> tuple[str, str]:
    """Parse a time range such as "0800-1700", "8-17" or "08:00-17:00".

    Args:
        value: Range as typed by the user.

    Returns:
        Tuple of normalized (start, end) strings.

    Raises:
        ValueError: If the range is malformed or does not end after it starts.
    """
    parts = value.split("-")
    if len(parts) != 2:
        msg = f"invalid time range format: {value} (expected HHMM-HHMM or H-H)"
        raise ValueError(msg)
    start, end = normalize_time(parts[0]), normalize_time(parts[1])
    if end <= start:
        msg = f"end time {end} must be later than start time {start}"
        raise ValueError(msg)
    return start, end


def parse_days(value: str) -> list[int]:
    """Parse a weekday selection such as "1-5" or "1,3,5".

    Args:
        value: Days as typed by the user, ISO numbering (1=Mon ... 7=Sun).

    Returns:
        Deduplicated list of weekdays, in the order given.

    Raises:
        ValueError: If a day or range is invalid.
    """
    days: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                msg = f"invalid day range: {part}"
                raise ValueError(msg)
            start, end = _parse_day(bounds[0]), _parse_day(bounds[1])
            if start > end:
                msg = f"invalid day range: {start}-{end}"
                raise ValueError(msg)
            days.extend(range(start, end + 1))
        else:
            days.append(_parse_day(part))
    return list(dict.fromkeys(days))


def _parse_day(value: str) -> int:
    try:
        day = int(value.strip())
    except ValueError:
        msg = f"invalid day: {value}"
        raise ValueError(msg) from None
    if day not in WEEKDAYS:
        msg = f"invalid day: {day} (must be 1-7)"
        raise ValueError(msg)
    return day


def format_days(days: list[int]) -> str:
    """Format weekdays as "Mon, Tue, Wed"."""
    return ", ".join(_DAY_NAMES[d] for d in sorted(days) if d in _DAY_NAMES)


def describe_schedule(schedule: ScheduleConfig) -> str:
    """Human-readable one-line description of a schedule."""
    if schedule.cron is not None:
        return f"cron '{schedule.cron}'"
    return f"{schedule.start_time} - {schedule.end_time} ({format_days(schedule.days or [])})"


def validate_cron(expression: str) -> str:
    """Validate a cron expression for storage.

    Raises:
        ValueError: If the expression is not valid cron syntax.
    """
    expression = expression.strip()
    if not croniter.is_valid(expression):
        msg = f"invalid cron expression: {expression}"
        raise ValueError(msg)
    return expression
