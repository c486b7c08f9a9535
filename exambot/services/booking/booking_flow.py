"""Per-account booking flow from exam page to payment hand-off."""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from exambot.constants import ERROR_TITLE_MARKERS, Selectors
from exambot.core.config.config_models import BookingConfig
from exambot.core.exceptions import LoginError, ModuleSelectionError, SelectorNotFoundError
from exambot.core.infra.retry import get_navigation_retry
from exambot.services.booking.conflict_handler import handle_booking_conflict
from exambot.services.booking.module_selector import select_available_modules
from exambot.services.notification import messages
from exambot.utils.masking import mask_email

if TYPE_CHECKING:
    from exambot.repositories.account_repository import Account, AccountRepository
    from exambot.services.browser.display import DisplayInfo
    from exambot.services.notification.telegram_client import ChatId, TelegramClient

LOGIN_FAILED_MESSAGE = "Login failed or timed out. Please verify credentials and complete manually."


class BookingOutcome(str, Enum):
    """How a booking attempt ended."""

    PAYMENT_REACHED = "payment_reached"
    MANUAL_INTERVENTION = "manual_intervention"
    FAILED = "failed"


def booking_url(template: str, oid: str) -> str:
    return template.format(oid=oid)


def is_error_title(title: str) -> bool:
    """Whether a page title means the booking page did not load."""
    lowered = title.lower()
    return any(marker in lowered for marker in ERROR_TITLE_MARKERS)


class BookingFlow:
    """
    Drives one browser page through the booking steps for one account.

    Every message is prefixed with the account email and sent without
    waiting for Telegram. Whenever the flow cannot continue on its own the
    user is given the VNC details of the browser and the page is kept open
    for the manual intervention period.
    """

    def __init__(
        self,
        telegram: "TelegramClient",
        accounts: "AccountRepository",
        config: Optional[BookingConfig] = None,
    ):
        self.telegram = telegram
        self.accounts = accounts
        self.config = config or BookingConfig()

    @property
    def _timeout(self) -> int:
        return self.config.slow_page_timeout

    def send_account_log(self, chat_id: "ChatId", account: "Account", message: str) -> None:
        logger.bind(account=mask_email(account.email)).info(message.splitlines()[0])
        self.telegram.send_in_background(chat_id, messages.account_log(account.email, message))

    async def handle_error_with_browser_access(
        self,
        chat_id: "ChatId",
        account: "Account",
        error: str,
        display: Optional["DisplayInfo"] = None,
    ) -> None:
        """
        Tell the user how to reach the browser and keep it open for them.

        Args:
            chat_id: Owner's chat ID
            account: Account being booked
            error: What went wrong
            display: Remote access details of the browser, if known
        """
        wait = self.config.manual_intervention_wait
        self.send_account_log(chat_id, account, messages.manual_access(error, display, wait))
        await asyncio.sleep(wait)

    @get_navigation_retry()
    async def _goto(self, page: Page, url: str) -> None:
        await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout)

    async def _click_and_wait(self, page: Page, selector: str, wait_until: str) -> None:
        async with page.expect_navigation(wait_until=wait_until, timeout=self._timeout):
            await page.click(selector, timeout=self._timeout)

    async def _click_book_for_me(self, page: Page) -> None:
        buttons = page.locator(Selectors.LAYER_BUTTON_HIGH)
        await buttons.first.wait_for(state="visible", timeout=self._timeout)
        if await buttons.count() < 2:
            raise SelectorNotFoundError("book_for_me", [Selectors.LAYER_BUTTON_HIGH])
        async with page.expect_navigation(wait_until="domcontentloaded", timeout=self._timeout):
            await buttons.nth(1).click()

    async def _login(self, page: Page, account: "Account") -> None:
        await page.wait_for_selector(Selectors.USERNAME, state="visible", timeout=self._timeout)
        await page.fill(Selectors.USERNAME, account.email)
        await page.fill(Selectors.PASSWORD, account.password)
        async with page.expect_navigation(wait_until="networkidle", timeout=self._timeout):
            await page.click(Selectors.LOGIN_SUBMIT)

    async def run(
        self,
        page: Page,
        account: "Account",
        oid: str,
        chat_id: "ChatId",
        display: Optional["DisplayInfo"] = None,
    ) -> BookingOutcome:
        """
        Book the exam for one account.

        Args:
            page: Prewarmed browser page
            account: Account to book with
            oid: Exam booking identifier
            chat_id: Owner's chat ID for progress messages
            display: Remote access details of the browser

        Returns:
            How the attempt ended
        """
        log = logger.bind(account=mask_email(account.email))
        url = booking_url(self.config.booking_url_template, oid)
        log.info(f"INSTANT LAUNCH for {mask_email(account.email)}: {url}")
        self.send_account_log(chat_id, account, messages.instant_launch(oid))

        try:
            await self._goto(page, url)
        except PlaywrightError as e:
            await self.handle_error_with_browser_access(
                chat_id, account, f"Failed to load booking page: {e}", display
            )
            return BookingOutcome.FAILED

        try:
            title = await page.title()
            if is_error_title(title):
                log.warning(
                    f"Booking error page for {mask_email(account.email)} (title: {title}), retrying"
                )
                await self._goto(page, url)

            self.send_account_log(chat_id, account, "🚀 Starting booking process...")
            if display:
                self.send_account_log(chat_id, account, messages.browser_location(display))

            selection = await select_available_modules(page, account.modules)
            if not selection.status:
                raise ModuleSelectionError(selection.message)
            self.send_account_log(chat_id, account, "✅ Selected modules, continuing booking...")

            await page.wait_for_selector(
                Selectors.NEXT_BUTTON, state="visible", timeout=self._timeout
            )
            await self._click_and_wait(page, Selectors.NEXT_BUTTON, "domcontentloaded")
            await self._click_book_for_me(page)

            await self._login(page, account)
            self.send_account_log(
                chat_id, account, "✅ Submitted login form, waiting for response..."
            )

            conflict = await handle_booking_conflict(page)

            try:
                await self._click_and_wait(page, Selectors.NEXT_BUTTON, "networkidle")
            except PlaywrightError as e:
                raise LoginError(f"No response after login: {e}") from e
            self.send_account_log(chat_id, account, "✅ Login successful!")

            await self._click_and_wait(page, Selectors.NEXT_BUTTON, "networkidle")
            if conflict:
                await self._click_and_wait(page, Selectors.NEXT_BUTTON, "networkidle")
        except ModuleSelectionError as e:
            await self.handle_error_with_browser_access(
                chat_id, account, f"Required modules not available: {e.message}", display
            )
            return BookingOutcome.MANUAL_INTERVENTION
        except LoginError as e:
            log.info(f"Error after login for {mask_email(account.email)}: {e}")
            await self.handle_error_with_browser_access(
                chat_id, account, LOGIN_FAILED_MESSAGE, display
            )
            return BookingOutcome.MANUAL_INTERVENTION
        except (PlaywrightError, SelectorNotFoundError) as e:
            log.error(f"Booking process error for {mask_email(account.email)}: {e}")
            await self.handle_error_with_browser_access(
                chat_id, account, f"Booking process encountered an error: {e}", display
            )
            return BookingOutcome.FAILED

        log.info(f"Reached payment page for {mask_email(account.email)}")
        wait = self.config.manual_intervention_wait
        self.send_account_log(chat_id, account, messages.payment_reached(display, wait))
        await asyncio.sleep(wait)

        await self.accounts.set_status(account.id, False)
        self.send_account_log(chat_id, account, messages.SESSION_TIMEOUT)
        log.info(f"Booking process completed for {mask_email(account.email)}")
        return BookingOutcome.PAYMENT_REACHED
