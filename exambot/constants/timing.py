"""Timing-related constants (timeouts, intervals, delays)."""

from typing import Final


class Timeouts:
    """Timeout values - MILLISECONDS for Playwright, SECONDS noted separately."""

    # Playwright timeouts (milliseconds)
    BROWSER_DEFAULT: Final[int] = 180_000
    SLOW_PAGE: Final[int] = 300_000
    WARMUP_NAVIGATION: Final[int] = 10_000
    CAPTURE_NAVIGATION: Final[int] = 20_000
    CHECKBOX_WAIT: Final[int] = 5_000
    CONFLICT_NOTICE: Final[int] = 3_000

    # API/Service timeouts (seconds)
    EXAM_API_REQUEST_SECONDS: Final[float] = 5.0
    API_URL_CAPTURE_SECONDS: Final[float] = 25.0
    DATABASE_CONNECTION_SECONDS: Final[float] = 30.0
    SHUTDOWN_TIMEOUT: Final[int] = 30


class Intervals:
    """Interval values in SECONDS."""

    POLL_DEFAULT: Final[float] = 1.0
    POLL_MONITORING: Final[float] = 2.0
    SCHEDULER_CHECK: Final[int] = 15
    FORCE_STOP_CHECK: Final[float] = 0.5
    CAPTURE_RETRY_MAX: Final[float] = 15.0


class Delays:
    """UI interaction delays."""

    CHECKBOX_CLICK_MS: Final[int] = 100
    AFTER_CHECKBOX_CLICK: Final[float] = 0.3
    AFTER_FORM_EVENT: Final[float] = 0.5
