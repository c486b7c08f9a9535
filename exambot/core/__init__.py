"""Core infrastructure module."""

from .exceptions import (
    ApiUrlCaptureError,
    BookingError,
    BrowserPoolError,
    ConfigurationError,
    DatabaseError,
    ExamApiError,
    ExamBotError,
    LoginError,
    ModuleSelectionError,
    NetworkError,
    NoBrowsersAvailableError,
    RecordNotFoundError,
    ScheduleStateError,
    SelectorNotFoundError,
    ValidationError,
)

__all__ = [
    "ApiUrlCaptureError",
    "BookingError",
    "BrowserPoolError",
    "ConfigurationError",
    "DatabaseError",
    "ExamApiError",
    "ExamBotError",
    "LoginError",
    "ModuleSelectionError",
    "NetworkError",
    "NoBrowsersAvailableError",
    "RecordNotFoundError",
    "ScheduleStateError",
    "SelectorNotFoundError",
    "ValidationError",
]
