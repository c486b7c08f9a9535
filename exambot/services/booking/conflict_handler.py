"""Detection of the "existing booking" notice shown after login."""

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from exambot.constants import Selectors, Timeouts
from exambot.constants.site import CONFLICT_MARKERS


def is_conflict_text(text: str) -> bool:
    """Whether a notice text says the account already holds a booking."""
    lowered = text.lower()
    return any(marker in lowered for marker in CONFLICT_MARKERS)


async def handle_booking_conflict(page: Page) -> bool:
    """
    Confirm the existing-booking notice if the site shows one.

    Args:
        page: Page right after the login form was submitted

    Returns:
        True if a conflict notice was present and confirmed
    """
    try:
        layer = await page.wait_for_selector(
            Selectors.CONFLICT_LAYER, state="visible", timeout=Timeouts.CONFLICT_NOTICE
        )
    except PlaywrightError:
        return False
    if layer is None:
        return False

    text = await layer.inner_text()
    if not is_conflict_text(text):
        return False

    logger.info("Existing booking notice detected, confirming")
    try:
        await page.click(Selectors.CONFLICT_CONFIRM, timeout=Timeouts.CONFLICT_NOTICE)
    except PlaywrightError as e:
        logger.warning(f"Could not confirm existing booking notice: {e}")
    return True
