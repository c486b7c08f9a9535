"""Unified constants for ExamBot.

All classes and constants can be imported directly from this package:
    from exambot.constants import Timeouts, Selectors, ScheduleStatus
"""

from .database import Database, Pools, ScheduleStatus
from .site import (
    CONSENT_LOCAL_STORAGE,
    ERROR_TITLE_MARKERS,
    MODULE_CHECKBOX_MAP,
    MODULE_KEYS,
    Selectors,
    Urls,
)
from .timing import Delays, Intervals, Timeouts

__all__ = [
    "CONSENT_LOCAL_STORAGE",
    "Database",
    "Delays",
    "ERROR_TITLE_MARKERS",
    "Intervals",
    "MODULE_CHECKBOX_MAP",
    "MODULE_KEYS",
    "Pools",
    "ScheduleStatus",
    "Selectors",
    "Timeouts",
    "Urls",
]
