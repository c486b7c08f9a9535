"""Retry strategies for different exception types."""

import logging as stdlib_logging
from typing import Tuple, Type, Union

from playwright.async_api import Error as PlaywrightError
from telegram.error import NetworkError as TelegramNetworkError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

# Stdlib logger needed for tenacity's before_sleep_log
_stdlib_logger = stdlib_logging.getLogger(__name__)


def _make_retry(
    attempts: int,
    wait_strategy: object,
    exception_types: Union[Type[Exception], Tuple[Type[Exception], ...]],
) -> object:
    """
    Factory for creating retry decorators with consistent configuration.

    Args:
        attempts: Maximum number of retry attempts
        wait_strategy: Tenacity wait strategy
        exception_types: Exception type(s) to retry on

    Returns:
        Configured retry decorator
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_strategy,
        retry=retry_if_exception_type(exception_types),
        before_sleep=before_sleep_log(_stdlib_logger, stdlib_logging.WARNING),
        reraise=True,
    )


def get_navigation_retry():
    """
    Get retry strategy for page navigation on the booking site.

    The site answers slow or errors out under launch-day load, so navigation
    is retried quickly a few times before giving up.
    """
    return _make_retry(
        attempts=3,
        wait_strategy=wait_exponential(multiplier=1, min=1, max=5) + wait_random(0, 1),
        exception_types=PlaywrightError,
    )


def get_telegram_retry():
    """Get retry strategy for Telegram API operations."""
    return _make_retry(
        attempts=3,
        wait_strategy=wait_exponential(multiplier=1, min=1, max=8) + wait_random(0, 1),
        exception_types=(ConnectionError, TimeoutError, OSError, TelegramNetworkError),
    )
