"""Parallel booking launch across the prewarmed browser pool."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, Set

from loguru import logger

from exambot.constants import ScheduleStatus
from exambot.core.config.config_models import AppConfig
from exambot.core.exceptions import NoBrowsersAvailableError
from exambot.services.booking.booking_flow import BookingFlow, BookingOutcome, booking_url
from exambot.services.browser.display import DisplayInfo
from exambot.services.notification import messages
from exambot.utils.masking import mask_email

if TYPE_CHECKING:
    from exambot.repositories import (
        AccountRepository,
        Schedule,
        ScheduleRepository,
        UserRepository,
    )
    from exambot.repositories.account_repository import Account
    from exambot.services.browser.prewarmed_pool import PrewarmedBrowser, PrewarmedBrowserPool
    from exambot.services.notification.telegram_client import ChatId, TelegramClient

NO_BROWSERS_ERROR = "No pre-warmed browsers available"
NO_ACCOUNTS_ERROR = "No active accounts"


@dataclass
class LaunchSummary:
    """Tally of one multi-account launch."""

    total: int
    succeeded: int
    failed: int
    elapsed_ms: int

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


class BookingLauncher:
    """Runs the booking flow for every active account of a schedule's owner at once."""

    def __init__(
        self,
        schedules: "ScheduleRepository",
        users: "UserRepository",
        accounts: "AccountRepository",
        browser_pool: "PrewarmedBrowserPool",
        telegram: "TelegramClient",
        config: Optional[AppConfig] = None,
        server_ip: str = "localhost",
        flow: Optional[BookingFlow] = None,
    ):
        """
        Initialize the launcher.

        Args:
            schedules: Schedule repository
            users: User repository
            accounts: Account repository
            browser_pool: Pool holding the prewarmed browsers
            telegram: Client for user notifications
            config: Application configuration
            server_ip: Public address used in noVNC links
            flow: Booking flow (built from the other arguments when None)
        """
        self.schedules = schedules
        self.users = users
        self.accounts = accounts
        self.browser_pool = browser_pool
        self.telegram = telegram
        self.config = config or AppConfig()
        self.server_ip = server_ip
        self.flow = flow or BookingFlow(telegram, accounts, self.config.booking)
        self._cleanup_tasks: Set[asyncio.Task] = set()

    def display_info(self, display: str) -> DisplayInfo:
        pool_config = self.config.browser_pool
        return DisplayInfo.for_display(
            display,
            self.server_ip,
            novnc_base_port=pool_config.novnc_base_port,
            vnc_base_port=pool_config.vnc_base_port,
        )

    def schedule_browser_cleanup(self, delay: Optional[float] = None) -> asyncio.Task:
        """Close every pool browser after ``delay`` seconds (default cleanup delay)."""
        delay = self.config.booking.browser_cleanup_delay if delay is None else delay

        async def cleanup() -> None:
            await asyncio.sleep(delay)
            await self.browser_pool.close_all_browsers()

        task = asyncio.create_task(cleanup())
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)
        logger.info(f"Browsers will be closed in {delay / 60:g} minutes")
        return task

    def cancel_cleanup(self) -> None:
        for task in list(self._cleanup_tasks):
            task.cancel()

    async def _book_one(
        self,
        index: int,
        prewarmed: "PrewarmedBrowser",
        account: "Account",
        oid: str,
        chat_id: "ChatId",
    ) -> bool:
        logger.info(f"Browser {index + 1} ({mask_email(account.email)}) launched")
        try:
            outcome = await self.flow.run(
                prewarmed.page, account, oid, chat_id, self.display_info(prewarmed.display)
            )
        except Exception as e:
            logger.exception(f"Booking failed for {mask_email(account.email)}: {e}")
            return False
        return outcome == BookingOutcome.PAYMENT_REACHED

    async def _abort(
        self,
        schedule: Optional["Schedule"],
        chat_id: Optional["ChatId"],
        error: str,
        notice: Callable[[str], str],
    ) -> None:
        """Mark the schedule failed without launching anything and tell its owner."""
        if schedule is None:
            return
        await self.schedules.update_fields(
            schedule.id,
            completed=True,
            status=ScheduleStatus.FAILED,
            last_run=datetime.now(timezone.utc),
            last_error=error,
        )
        if chat_id:
            await self.telegram.send_message(chat_id, notice(schedule.name))

    async def run_all_accounts(
        self, oid: str, schedule_id: Optional[int] = None
    ) -> Optional[LaunchSummary]:
        """
        Launch the booking flow for all active accounts of the schedule owner.

        Accounts are paired with ready browsers in order. Extra browsers stay
        idle and extra accounts are skipped.

        Args:
            oid: Exam booking identifier
            schedule_id: Schedule that found the exam

        Returns:
            Launch tally, or None when no browser was ready or no account is active

        Raises:
            Exception: Any unexpected error, after the schedule is marked failed
        """
        start = time.monotonic()
        logger.info(f"ULTRA-FAST PARALLEL LAUNCH - OID: {oid}")

        schedule = await self.schedules.get_by_id(schedule_id) if schedule_id else None
        user = await self.users.get_by_id(schedule.created_by) if schedule else None
        chat_id = user.telegram_id if user else None

        try:
            ready = self.browser_pool.get_all_ready_browsers()
            if not ready:
                raise NoBrowsersAvailableError(NO_BROWSERS_ERROR)

            accounts: List["Account"] = (
                await self.accounts.get_active(user.id) if user else []
            )
            if not accounts:
                logger.error("No active accounts to book with")
                self.schedule_browser_cleanup()
                await self._abort(schedule, chat_id, NO_ACCOUNTS_ERROR, messages.no_active_accounts)
                return None

            pairs = list(zip(ready, accounts))
            if len(accounts) > len(ready):
                logger.warning(
                    f"{len(accounts) - len(ready)} accounts skipped: only {len(ready)} browsers ready"
                )
            logger.info(f"Launching {len(pairs)} browsers SIMULTANEOUSLY!")

            if schedule and chat_id:
                await self.telegram.send_message(
                    chat_id, messages.multi_launch(schedule.name, oid, len(ready), len(accounts))
                )

            results = await asyncio.gather(
                *(
                    self._book_one(i, prewarmed, account, oid, chat_id)
                    for i, (prewarmed, account) in enumerate(pairs)
                )
            )

            summary = LaunchSummary(
                total=len(pairs),
                succeeded=sum(1 for ok in results if ok),
                failed=sum(1 for ok in results if not ok),
                elapsed_ms=int((time.monotonic() - start) * 1000),
            )
            logger.info(
                f"All browsers processed in {summary.elapsed_ms}ms! "
                f"Success: {summary.succeeded}, Errors: {summary.failed}"
            )

            self.schedule_browser_cleanup()

            if schedule:
                await self.schedules.update_fields(
                    schedule.id,
                    completed=True,
                    status=(
                        ScheduleStatus.SUCCESS
                        if summary.all_succeeded
                        else ScheduleStatus.PARTIAL_SUCCESS
                    ),
                    last_run=datetime.now(timezone.utc),
                    last_error=None if summary.all_succeeded else f"{summary.failed} accounts failed",
                )
                if chat_id:
                    await self.telegram.send_message(
                        chat_id,
                        messages.launch_summary(
                            schedule.name,
                            summary.elapsed_ms,
                            summary.total,
                            summary.succeeded,
                            summary.failed,
                            self.config.booking.browser_cleanup_delay,
                        ),
                    )
            return summary

        except NoBrowsersAvailableError as e:
            logger.error(f"{e.message}!")
            await self._abort(schedule, chat_id, e.message, messages.no_browsers_ready)
            return None

        except Exception as e:
            logger.exception(f"Critical booking error: {e}")
            # Browsers stay open for manual intervention
            self.schedule_browser_cleanup()
            if schedule:
                await self.schedules.update_fields(
                    schedule.id,
                    status=ScheduleStatus.FAILED,
                    last_error=f"System error: {e}",
                    last_run=datetime.now(timezone.utc),
                )
                if chat_id:
                    await self.telegram.send_message(
                        chat_id, messages.launch_error(schedule.name, str(e))
                    )
            raise

    async def ultra_fast_direct_launch(self, oid: str) -> int:
        """
        Navigate every ready browser to the booking page without running the flow.

        Returns:
            Number of browsers that loaded the page
        """
        browsers = self.browser_pool.get_all_ready_browsers()
        url = booking_url(self.config.booking.booking_url_template, oid)
        logger.info(f"ULTRA FAST DIRECT LAUNCH - {len(browsers)} browsers")

        async def navigate(prewarmed: "PrewarmedBrowser") -> bool:
            try:
                await prewarmed.page.goto(url, wait_until="domcontentloaded")
            except Exception as e:
                logger.error(f"Browser {prewarmed.number} failed: {e}")
                return False
            logger.info(f"Browser {prewarmed.number} loaded")
            return True

        results = await asyncio.gather(*(navigate(b) for b in browsers))
        return sum(1 for ok in results if ok)
