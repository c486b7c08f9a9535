"""python-telegram-bot application wiring and lifecycle."""

from loguru import logger
from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from exambot.services.telegram_bot.handlers import BotHandlers

DELETE_COMMAND_PATTERN = r"^/delete_(\d+)"


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error(f"Unhandled chat bot error: {context.error}")
    if isinstance(update, Update) and update.effective_chat is not None:
        try:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="Sorry, there was an error. Please try again.",
            )
        except Exception as e:
            logger.warning(f"Could not report error to chat: {e}")


def build_application(token: str, handlers: BotHandlers) -> Application:
    """
    Build the bot application with all handlers registered.

    Args:
        token: Bot token
        handlers: Handler implementation

    Returns:
        Configured (not yet started) application
    """
    application = ApplicationBuilder().token(token).build()

    application.add_handler(CommandHandler("start", handlers.start))
    application.add_handler(CommandHandler("cancel", handlers.cancel))
    application.add_handler(CommandHandler("state", handlers.state))
    application.add_handler(
        MessageHandler(filters.Regex(DELETE_COMMAND_PATTERN), handlers.delete_schedule_command)
    )
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handlers.on_message))
    application.add_handler(CallbackQueryHandler(handlers.on_callback))
    application.add_error_handler(_on_error)
    return application


class TelegramBotRunner:
    """Runs the bot's long polling inside an existing event loop."""

    def __init__(self, application: Application):
        self.application = application
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        await self.application.initialize()
        await self.application.start()
        if self.application.updater is not None:
            await self.application.updater.start_polling(drop_pending_updates=True)
        self._running = True
        logger.info("🤖 Chat bot polling started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        try:
            if self.application.updater is not None and self.application.updater.running:
                await self.application.updater.stop()
            await self.application.stop()
        finally:
            await self.application.shutdown()
        logger.info("Chat bot stopped")
