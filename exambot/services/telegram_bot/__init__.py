"""Chat bot for managing accounts and schedules."""

from .app import TelegramBotRunner, build_application
from .handlers import BotHandlers
from .states import ConversationStore, UserState

__all__ = [
    "BotHandlers",
    "ConversationStore",
    "TelegramBotRunner",
    "UserState",
    "build_application",
]
