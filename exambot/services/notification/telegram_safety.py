"""Decorator for Telegram calls that must never break the caller."""

import functools
from typing import Any, Callable

from loguru import logger


def safe_telegram_call(operation_name: str) -> Callable:
    """
    Async decorator that wraps a Telegram operation with uniform error handling.

    Any exception that survives retries is logged and turned into ``False``,
    so a failed notification never aborts a booking.

    Args:
        operation_name: Human-readable label used in log messages.

    Usage::

        @safe_telegram_call("send message")
        async def send(self, ...) -> bool:
            ...
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> bool:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Telegram {operation_name} failed: {e}")
                return False

        return wrapper

    return decorator
