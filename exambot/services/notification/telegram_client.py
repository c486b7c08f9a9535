"""Telegram client wrapper used for user notifications."""

import asyncio
from typing import List, Optional, Set, Union

from loguru import logger
from telegram import Bot

from exambot.core.infra.retry import get_telegram_retry
from exambot.services.notification.telegram_safety import safe_telegram_call

ChatId = Union[int, str]


class TelegramClient:
    """Telegram client wrapper using python-telegram-bot library."""

    # Telegram API message limits
    TELEGRAM_MESSAGE_LIMIT = 4096

    def __init__(self, bot_token: Optional[str] = None, bot: Optional[Bot] = None):
        """
        Initialize Telegram client.

        Args:
            bot_token: Telegram bot token
            bot: Existing bot instance (e.g. the chat application's bot)

        Raises:
            ValueError: If neither a token nor a bot is given
        """
        if bot is None:
            if not bot_token:
                raise ValueError("Telegram bot token or bot instance is required")
            bot = Bot(token=bot_token)
        self._bot = bot
        self._background: Set[asyncio.Task] = set()

    @staticmethod
    def escape_markdown(text: str) -> str:
        """
        Escape Telegram Markdown special characters.

        Args:
            text: Text to escape

        Returns:
            Escaped text safe for Markdown parse_mode
        """
        for char in ["*", "_", "`", "["]:
            text = text.replace(char, "\\" + char)
        return text

    @staticmethod
    def split_message(text: str, max_length: Optional[int] = None) -> List[str]:
        """
        Split a message into chunks that fit within the max_length limit.

        Tries to split at newlines first, then at spaces to avoid breaking words.

        Args:
            text: Text to split
            max_length: Maximum length per chunk (defaults to TELEGRAM_MESSAGE_LIMIT)

        Returns:
            List of text chunks, each <= max_length
        """
        if max_length is None:
            max_length = TelegramClient.TELEGRAM_MESSAGE_LIMIT

        if len(text) <= max_length:
            return [text]

        chunks = []
        remaining = text
        while remaining:
            if len(remaining) <= max_length:
                chunks.append(remaining)
                break

            split_pos = remaining.rfind("\n", 0, max_length)
            if split_pos == -1:
                split_pos = remaining.rfind(" ", 0, max_length)

            if split_pos == -1:
                chunks.append(remaining[:max_length])
                remaining = remaining[max_length:]
            else:
                chunks.append(remaining[:split_pos])
                remaining = remaining[split_pos + 1 :]

        return chunks

    @safe_telegram_call("send message")
    @get_telegram_retry()
    async def send_message(
        self, chat_id: ChatId, text: str, parse_mode: Optional[str] = "Markdown"
    ) -> bool:
        """
        Send a text message via Telegram with automatic message splitting.

        Args:
            chat_id: Telegram chat ID
            text: Message text
            parse_mode: Parse mode for message formatting (default: "Markdown")

        Returns:
            True if successful, False otherwise
        """
        message_chunks = self.split_message(text, self.TELEGRAM_MESSAGE_LIMIT)
        for chunk in message_chunks:
            await self._bot.send_message(chat_id=chat_id, text=chunk, parse_mode=parse_mode)

        logger.debug(f"Telegram message sent successfully ({len(message_chunks)} chunk(s))")
        return True

    def send_in_background(
        self, chat_id: ChatId, text: str, parse_mode: Optional[str] = "Markdown"
    ) -> asyncio.Task:
        """
        Fire-and-forget variant of :meth:`send_message`.

        The task is referenced until done so it is not garbage collected.
        """
        task = asyncio.create_task(self.send_message(chat_id, text, parse_mode=parse_mode))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
