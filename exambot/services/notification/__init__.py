"""User notifications over Telegram."""

from .telegram_client import TelegramClient
from .telegram_safety import safe_telegram_call

__all__ = ["TelegramClient", "safe_telegram_call"]
