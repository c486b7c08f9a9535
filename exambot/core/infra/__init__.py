"""Infrastructure utilities module."""

from .retry import get_navigation_retry, get_telegram_retry

__all__ = ["get_navigation_retry", "get_telegram_retry"]
