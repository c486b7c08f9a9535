#!/usr/bin/env python3
"""
ExamBot - Automated exam slot monitoring and booking.

Main entry point for the application.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from dataclasses import dataclass
from typing import Optional

import uvicorn

from exambot.constants import Timeouts
from exambot.core.config import AppConfig, BotSettings, get_settings
from exambot.core.config_loader import load_config
from exambot.core.exceptions import ShutdownTimeoutError
from exambot.core.logger import setup_structured_logging
from exambot.models.database import Database
from exambot.repositories import AccountRepository, ScheduleRepository, UserRepository
from exambot.services.booking import BookingLauncher
from exambot.services.browser import PrewarmedBrowserPool
from exambot.services.notification.telegram_client import TelegramClient
from exambot.services.scheduling import ExamScheduler
from exambot.services.telegram_bot import BotHandlers, TelegramBotRunner, build_application
from exambot.utils.encryption import PasswordEncryption
from exambot.utils.security.proxy_manager import ProxyManager
from web.app import create_app

# Graceful shutdown timeout in seconds (configurable via env)
try:
    SHUTDOWN_TIMEOUT = max(5, min(int(os.getenv("SHUTDOWN_TIMEOUT", "30")), 300))
except (ValueError, TypeError):
    SHUTDOWN_TIMEOUT = Timeouts.SHUTDOWN_TIMEOUT


class EmbeddedServer(uvicorn.Server):
    """Uvicorn server that leaves signal handling to the host process."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


@dataclass
class BotComponents:
    """Everything the bot mode starts and must stop."""

    runner: TelegramBotRunner
    scheduler: ExamScheduler
    launcher: BookingLauncher
    browser_pool: PrewarmedBrowserPool


def setup_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """
    Setup graceful shutdown handlers.

    The first signal sets the shutdown event; a second one exits immediately.
    """
    logger = logging.getLogger(__name__)
    loop = asyncio.get_running_loop()

    def handle_signal(signum: int) -> None:
        if not shutdown_event.is_set():
            logger.info(f"Received signal {signum}, initiating graceful shutdown...")
            shutdown_event.set()
        else:
            logger.warning("Second signal received, forcing exit")
            sys.exit(1)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)


def build_bot(
    settings: BotSettings, config: AppConfig, db: Database
) -> BotComponents:
    """
    Wire repositories, browser pool, launcher, scheduler and chat bot.

    Args:
        settings: Deployment settings
        config: Behavioral configuration
        db: Connected database

    Returns:
        Unstarted bot components
    """
    users = UserRepository(db)
    encryption = PasswordEncryption(settings.encryption_key.get_secret_value())
    accounts = AccountRepository(db, encryption)
    schedules = ScheduleRepository(db)

    proxy_manager = ProxyManager(
        enabled=settings.use_proxies,
        max_slots=config.proxies.max_slots,
        proxy_file=config.proxies.proxy_file,
    )
    browser_pool = PrewarmedBrowserPool(config.browser_pool, proxy_manager)

    application = build_application(
        settings.telegram_token.get_secret_value(), BotHandlers(users, accounts, schedules)
    )
    telegram = TelegramClient(bot=application.bot)

    launcher = BookingLauncher(
        schedules,
        users,
        accounts,
        browser_pool,
        telegram,
        config=config,
        server_ip=settings.server_ip,
    )
    scheduler = ExamScheduler(schedules, users, browser_pool, launcher, telegram, config=config)
    return BotComponents(
        runner=TelegramBotRunner(application),
        scheduler=scheduler,
        launcher=launcher,
        browser_pool=browser_pool,
    )


async def shutdown_bot(components: BotComponents) -> None:
    """Stop the scheduler, its sessions, the browsers and the chat bot."""
    logger = logging.getLogger(__name__)
    await components.scheduler.stop()
    components.launcher.cancel_cleanup()
    try:
        await components.scheduler.stop_all_monitoring()
    except Exception as e:
        logger.error(f"Error stopping monitoring sessions: {e}")
    try:
        await components.runner.stop()
    except Exception as e:
        logger.error(f"Error stopping chat bot: {e}")


async def graceful_shutdown_with_timeout(
    db: Database,
    components: Optional[BotComponents] = None,
    server: Optional[EmbeddedServer] = None,
    server_task: Optional[asyncio.Task] = None,
) -> None:
    """
    Stop all services, closing the database even when they hang.

    Raises:
        ShutdownTimeoutError: If services do not stop within SHUTDOWN_TIMEOUT
    """
    logger = logging.getLogger(__name__)

    async def stop_services() -> None:
        if server is not None:
            server.should_exit = True
        if server_task is not None:
            await server_task
        if components is not None:
            await shutdown_bot(components)

    try:
        await asyncio.wait_for(stop_services(), timeout=SHUTDOWN_TIMEOUT)
    except asyncio.TimeoutError:
        raise ShutdownTimeoutError(
            f"Graceful shutdown timed out after {SHUTDOWN_TIMEOUT}s", timeout=SHUTDOWN_TIMEOUT
        )
    finally:
        try:
            await asyncio.wait_for(db.close(), timeout=10)
            logger.info("Database closed successfully")
        except asyncio.TimeoutError:
            logger.error("Database close timed out after 10s")


async def run(mode: str, settings: BotSettings, config: AppConfig) -> None:
    """
    Run the selected services until a shutdown signal arrives.

    Args:
        mode: bot (chat bot and scheduler), web (admin API) or both
        settings: Deployment settings
        config: Behavioral configuration
    """
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    setup_signal_handlers(shutdown_event)

    db = Database(settings.database_url, settings.db_pool_size, settings.db_connection_timeout)
    await db.connect()

    components: Optional[BotComponents] = None
    server: Optional[EmbeddedServer] = None
    server_task: Optional[asyncio.Task] = None
    try:
        if mode in ("bot", "both"):
            components = build_bot(settings, config, db)
            await components.runner.start()
            components.scheduler.start()
            logger.info("✅ Chat bot and scheduler running")

        if mode in ("web", "both"):
            app = create_app(components.scheduler if components else None, db)
            server = EmbeddedServer(
                uvicorn.Config(
                    app,
                    host=settings.health_check_host,
                    port=settings.health_check_port,
                    log_level=settings.log_level.lower(),
                )
            )
            server_task = asyncio.create_task(server.serve())
            logger.info(
                f"🏥 Admin API listening on {settings.health_check_host}:{settings.health_check_port}"
            )

        await shutdown_event.wait()
    finally:
        try:
            await graceful_shutdown_with_timeout(db, components, server, server_task)
        except ShutdownTimeoutError as e:
            logger.error(f"Shutdown timeout: {e}")
        logger.info("Shutdown complete")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="ExamBot - Automated exam slot booking")
    parser.add_argument(
        "--mode",
        choices=["bot", "web", "both"],
        default="both",
        help="Run mode: bot (chat bot + scheduler), web (admin API only), both (default)",
    )
    parser.add_argument("--config", default="config/config.yaml", help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to LOG_LEVEL)",
    )

    args = parser.parse_args()

    settings = get_settings()
    json_logging = os.getenv("JSON_LOGGING", "true").lower() == "true"
    setup_structured_logging(args.log_level or settings.log_level, json_format=json_logging)
    logger = logging.getLogger(__name__)

    try:
        logger.info("Loading configuration...")
        config = load_config(args.config)
        logger.info("Configuration loaded successfully")

        asyncio.run(run(args.mode, settings, config))

    except FileNotFoundError as e:
        logger.error(f"Configuration file not found: {e}")
        logger.info("Please copy config/config.example.yaml to config/config.yaml and configure it")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
