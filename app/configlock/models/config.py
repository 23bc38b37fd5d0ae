"""Config models for configlock.

This module defines the Pydantic models representing config.toml: the
managed path list, the enforcement schedule, and temporary exclusions.
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ISO weekday numbers (Monday=1 ... Sunday=7)
WEEKDAYS: tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7)


class ScheduleConfig(BaseModel):
    """Enforcement schedule section of the config.

    Exactly one representation is active: either a daily time range
    restricted to a set of weekdays, or a cron expression.

    Time strings and cron syntax are deliberately not validated here.
    A hand-edited malformed value still loads, and the schedule evaluator
    treats it as "outside the window".

    Attributes:
        start_time: Window start as "HH:MM" (inclusive).
        end_time: Window end as "HH:MM" (exclusive).
        days: ISO weekdays on which the window applies.
        cron: Five-field cron expression.
    """

    model_config = ConfigDict(extra="forbid")

    start_time: Annotated[str | None, Field(description="Window start (HH:MM)")] = None
    end_time: Annotated[str | None, Field(description="Window end (HH:MM)")] = None
    days: Annotated[
        list[int] | None,
        Field(description="ISO weekdays (1=Mon ... 7=Sun)"),
    ] = None
    cron: Annotated[str | None, Field(description="Cron expression")] = None

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: list[int] | None) -> list[int] | None:
        """Validate weekday numbers and drop duplicates, keeping order."""
        if v is None:
            return v
        invalid = [d for d in v if d not in WEEKDAYS]
        if invalid:
            msg = f"Invalid weekday(s) {invalid} (must be 1-7)"
            raise ValueError(msg)
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_single_representation(self) -> "ScheduleConfig":
        """Validate that exactly one schedule representation is set."""
        has_range = any(v is not None for v in (self.start_time, self.end_time, self.days))
        if self.cron is not None and has_range:
            msg = "Schedule cannot define both a cron expression and a time range"
            raise ValueError(msg)
        if self.cron is None:
            if self.start_time is None or self.end_time is None:
                msg = "Schedule needs either a cron expression or both start_time and end_time"
                raise ValueError(msg)
            if self.days is None:
                self.days = [1, 2, 3, 4, 5]
        return self

    @property
    def is_cron(self) -> bool:
        """Check if the schedule uses a cron expression."""
        return self.cron is not None

    @classmethod
    def time_range(cls, start_time: str, end_time: str, days: list[int]) -> "ScheduleConfig":
        """Build a time-range schedule."""
        return cls(start_time=start_time, end_time=end_time, days=days)

    @classmethod
    def from_cron(cls, expression: str) -> "ScheduleConfig":
        """Build a cron schedule."""
        return cls(cron=expression)


class Config(BaseModel):
    """Complete configlock configuration.

    Attributes:
        managed_paths: Absolute paths under enforcement, unique, in insertion order.
        schedule: Enforcement schedule.
        temp_exclusion_minutes: Default duration for temporary exclusions.
        exclusions: Absolute path to ISO-8601 expiry timestamp.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    managed_paths: Annotated[
        list[str],
        Field(default_factory=list, description="Absolute paths under enforcement"),
    ]
    schedule: Annotated[ScheduleConfig, Field(description="Enforcement schedule")]
    temp_exclusion_minutes: Annotated[
        int,
        Field(ge=1, description="Default temporary exclusion duration in minutes"),
    ] = 5
    exclusions: Annotated[
        dict[str, str],
        Field(default_factory=dict, description="Path to exclusion expiry (ISO-8601)"),
    ]

    @field_validator("managed_paths")
    @classmethod
    def validate_managed_paths(cls, v: list[str]) -> list[str]:
        """Validate that paths are absolute and collapse duplicates."""
        relative = [p for p in v if not p.startswith("/")]
        if relative:
            msg = f"Managed paths must be absolute: {relative}"
            raise ValueError(msg)
        return list(dict.fromkeys(v))

    def has_path(self, path: str) -> bool:
        """Check if a path is managed."""
        return path in self.managed_paths

    def add_path(self, path: str) -> bool:
        """Add a managed path.

        Args:
            path: Absolute path to add.

        Returns:
            True if the path was added, False if it was already managed.
        """
        if self.has_path(path):
            return False
        self.managed_paths = [*self.managed_paths, path]
        return True

    def remove_path(self, path: str) -> bool:
        """Remove a managed path and any exclusion recorded for it.

        Args:
            path: Absolute path to remove.

        Returns:
            True if the path was removed, False if it was not managed.
        """
        if not self.has_path(path):
            return False
        self.managed_paths = [p for p in self.managed_paths if p != path]
        self.exclusions.pop(path, None)
        return True
