"""Data models for configlock.

This module exports the core data structures used throughout the application.
"""

from configlock.models.config import WEEKDAYS, Config, ScheduleConfig

__all__ = [
    "WEEKDAYS",
    "Config",
    "ScheduleConfig",
]
