"""Custom exception classes for ExamBot."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class ExamBotError(Exception):
    """Base exception for ExamBot."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize ExamBot error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(ExamBotError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class MissingEnvironmentVariableError(ConfigurationError):
    """Raised when a required environment variable is missing."""

    def __init__(self, variable_name: str):
        super().__init__(
            f"Required environment variable '{variable_name}' is not set",
            recoverable=False,
            details={"variable": variable_name},
        )


# Validation Errors
class ValidationError(ExamBotError):
    """Input validation error."""

    def __init__(self, message: str = "Validation error", field: Optional[str] = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
        """
        self.field = field
        super().__init__(message, recoverable=False, details={"field": field} if field else {})


# Database Errors
class DatabaseError(ExamBotError):
    """Base class for database-related errors."""

    def __init__(
        self,
        message: str = "Database error occurred",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class DatabaseNotConnectedError(DatabaseError):
    """Raised when operation attempted without connection."""

    def __init__(self):
        super().__init__(
            "Database connection is not established. Call connect() first.", recoverable=False
        )


class DatabasePoolTimeoutError(DatabaseError):
    """Raised when database connection pool is exhausted and timeout occurs."""

    def __init__(self, timeout: float, pool_size: int):
        super().__init__(
            f"Database connection pool exhausted after {timeout}s (pool size: {pool_size}). "
            "Consider increasing DB_POOL_SIZE.",
            recoverable=True,
            details={"timeout": timeout, "pool_size": pool_size},
        )


class RecordNotFoundError(DatabaseError):
    """Raised when a database record is not found."""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            recoverable=False,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


# Network / Exam API Errors
class NetworkError(ExamBotError):
    """Network connection error occurred."""

    def __init__(self, message: str = "Network error occurred", recoverable: bool = True):
        super().__init__(message, recoverable)


class ExamApiError(NetworkError):
    """Exam finder API returned an unusable response."""

    def __init__(self, message: str = "Exam API request failed", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, recoverable=True)
        if status_code is not None:
            self.details["status_code"] = status_code


class ApiUrlCaptureError(ExamBotError):
    """Exam finder API URL could not be captured from the website."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Failed to capture exam API URL after {attempts} attempts",
            recoverable=False,
            details={"attempts": attempts},
        )


# Browser Errors
class BrowserPoolError(ExamBotError):
    """Browser pool operation failed."""

    def __init__(
        self,
        message: str = "Browser pool error",
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class NoBrowsersAvailableError(BrowserPoolError):
    """No prewarmed browsers are ready."""

    def __init__(self, message: str = "No prewarmed browsers available"):
        super().__init__(message, recoverable=False)


# Booking Errors
class BookingError(ExamBotError):
    """Exam booking failed."""

    def __init__(
        self,
        message: str = "Booking failed",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class LoginError(BookingError):
    """Login on the booking site failed."""

    def __init__(self, message: str = "Login failed"):
        super().__init__(message, recoverable=False)


class ModuleSelectionError(BookingError):
    """Required exam modules could not be selected."""

    def __init__(self, message: str = "Module selection failed"):
        super().__init__(message, recoverable=False)


class SelectorNotFoundError(BookingError):
    """Selector not found - website structure may have changed."""

    def __init__(self, selector_name: str, tried_selectors: Optional[List[str]] = None):
        """
        Initialize selector not found error.

        Args:
            selector_name: Name of the selector that was not found
            tried_selectors: List of selector strings that were tried
        """
        self.selector_name = selector_name
        self.tried_selectors = tried_selectors or []
        message = f"Selector '{selector_name}' not found."
        if self.tried_selectors:
            message += f" Tried: {', '.join(self.tried_selectors)}"
        super().__init__(message)


# Scheduling Errors
class ScheduleStateError(ExamBotError):
    """Schedule is not in a state that allows the requested transition."""

    def __init__(self, schedule_id: Any, status: str, action: str):
        super().__init__(
            f"Cannot {action} schedule {schedule_id} in status '{status}'",
            recoverable=False,
            details={"schedule_id": schedule_id, "status": status, "action": action},
        )


# Shutdown Errors
class ShutdownTimeoutError(ExamBotError):
    """Graceful shutdown timed out."""

    def __init__(self, message: str = "Graceful shutdown timed out", timeout: Optional[int] = None):
        self.timeout = timeout
        details = {"timeout": timeout} if timeout else {}
        super().__init__(message, recoverable=False, details=details)
