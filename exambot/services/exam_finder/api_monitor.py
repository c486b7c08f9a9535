"""Exam finder API monitor.

Polls the exam finder REST endpoint until an exam with a booking identifier
(``oid``) appears, then hands the identifier to a callback. The endpoint URL
carries per-session query parameters, so it is captured from the public exam
finder page with a headless browser and recaptured after repeated failures.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import aiohttp
from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response, async_playwright

from exambot.constants import Intervals, Pools, Timeouts
from exambot.core.config.config_models import ExamApiConfig
from exambot.core.exceptions import ApiUrlCaptureError, ExamApiError, NetworkError

OidFoundCallback = Callable[[str, Dict[str, Any]], Awaitable[None]]
TimeoutCallback = Callable[[], Awaitable[None]]

CAPTURE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CAPTURE_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

DEFAULT_MAX_DURATION = 30 * 60


def select_exam_with_oid(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    First exam in an API payload that carries a booking identifier.

    Args:
        payload: Decoded API response (``{"DATA": [...]}``)

    Returns:
        Exam dictionary or None
    """
    if not payload or not isinstance(payload.get("DATA"), list):
        return None
    for exam in payload["DATA"]:
        if isinstance(exam, dict) and exam.get("oid"):
            return exam
    return None


class ExamApiMonitor:
    """Debounced poller for newly released exam slots."""

    def __init__(self, config: Optional[ExamApiConfig] = None):
        """
        Initialize the monitor.

        Args:
            config: Exam API configuration (defaults apply when None)
        """
        self.config = config or ExamApiConfig()
        self.api_url: Optional[str] = self.config.api_url or None

        self.is_polling = False
        self.processing_oid = False
        self.processed_oids: Set[str] = set()
        self.consecutive_errors = 0
        self.last_successful_poll: Optional[datetime] = None

        self._should_stop = False
        self._poll_task: Optional[asyncio.Task] = None
        self._timeout_task: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Task] = set()
        self._http_session: Optional[aiohttp.ClientSession] = None

    # HTTP session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create the keep-alive HTTP session."""
        if self._http_session is None or self._http_session.closed:
            connector = aiohttp.TCPConnector(
                limit=Pools.HTTP_LIMIT,
                limit_per_host=Pools.HTTP_LIMIT_PER_HOST,
                ttl_dns_cache=Pools.DNS_CACHE_TTL,
                keepalive_timeout=Pools.KEEPALIVE_TIMEOUT,
                ssl=None if self.config.verify_ssl else False,
            )
            self._http_session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
                headers={"Accept": "application/json", "User-Agent": CAPTURE_USER_AGENT},
            )
            logger.debug("Exam API HTTP session initialized with connection pooling")
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    # API URL capture

    async def _navigate_for_capture(self, page: Page) -> None:
        try:
            await page.goto(
                self.config.capture_page_url,
                wait_until="networkidle",
                timeout=Timeouts.CAPTURE_NAVIGATION,
            )
        except PlaywrightError as e:
            # The XHR often fires before networkidle times out
            logger.debug(f"Exam finder page navigation incomplete: {e}")

    async def wait_for_api_request(self, page: Page) -> Optional[str]:
        """
        Load the exam finder page and return the first API request URL it makes.

        The capture timeout covers navigation too; the URL is returned as soon
        as it is seen, even while the page is still loading.

        Args:
            page: Fresh browser page

        Returns:
            Captured URL or None if none was seen within the capture timeout
        """
        keyword = self.config.capture_url_keyword
        captured: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_response(response: Response) -> None:
            if not captured.done() and keyword in response.url:
                captured.set_result(response.url)

        page.on("response", on_response)
        navigation = asyncio.ensure_future(self._navigate_for_capture(page))
        try:
            return await asyncio.wait_for(captured, timeout=self.config.capture_timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            navigation.cancel()
            await asyncio.gather(navigation, return_exceptions=True)

    async def _capture_once(self) -> Optional[str]:
        """Open the exam finder page in a throwaway headless browser once."""
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True, args=CAPTURE_BROWSER_ARGS)
            try:
                page = await browser.new_page(user_agent=CAPTURE_USER_AGENT)
                return await self.wait_for_api_request(page)
            finally:
                await browser.close()

    async def capture_api_url(
        self, max_retries: Optional[int] = None, retry_delay: Optional[float] = None
    ) -> str:
        """
        Capture the exam finder API URL, retrying with linear backoff.

        The wait between attempts is ``min(retry_delay * attempt, 15)`` seconds.

        Args:
            max_retries: Attempts before giving up
            retry_delay: Base delay in seconds

        Returns:
            Captured API URL (also stored on the monitor)

        Raises:
            ApiUrlCaptureError: If every attempt fails
        """
        max_retries = self.config.capture_retries if max_retries is None else max_retries
        retry_delay = self.config.capture_retry_delay if retry_delay is None else retry_delay

        for attempt in range(1, max_retries + 1):
            logger.info(f"Attempt {attempt}/{max_retries}: capturing exam API URL...")
            try:
                url = await self._capture_once()
            except PlaywrightError as e:
                logger.error(f"Error capturing API URL (attempt {attempt}): {e}")
                url = None

            if url:
                logger.info(f"API URL captured: {url}")
                self.api_url = url
                self.consecutive_errors = 0
                return url

            if attempt < max_retries:
                await asyncio.sleep(min(retry_delay * attempt, Intervals.CAPTURE_RETRY_MAX))

        logger.error(f"Failed to capture API URL after {max_retries} attempts")
        raise ApiUrlCaptureError(max_retries)

    async def check_and_recapture(self) -> bool:
        """
        Recapture the API URL once too many consecutive requests failed.

        Returns:
            False if recapture was needed and failed, True otherwise
        """
        if self.consecutive_errors < self.config.max_consecutive_errors:
            return True

        logger.warning(
            f"{self.consecutive_errors} consecutive errors, recapturing API URL..."
        )
        self.api_url = None
        try:
            await self.capture_api_url(
                self.config.recapture_retries, self.config.recapture_retry_delay
            )
        except ApiUrlCaptureError:
            logger.error("Failed to recapture API URL")
            return False
        logger.info("Successfully recaptured API URL")
        return True

    # Polling

    async def _fetch_exams(self, url: str) -> Dict[str, Any]:
        """
        GET the exam list.

        Raises:
            ExamApiError: On an HTTP error status or a body that is not a JSON object
            NetworkError: On connection failures and timeouts
        """
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise ExamApiError(
                        f"Exam API returned HTTP {response.status}", status_code=response.status
                    )
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise ExamApiError(
                        f"Exam API returned invalid JSON: {e}", status_code=response.status
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Exam API request failed: {e!r}") from e

        if not isinstance(payload, dict):
            raise ExamApiError(
                f"Exam API returned {type(payload).__name__} instead of an object",
                status_code=response.status,
            )
        return payload

    async def direct_api_call(self) -> Optional[Dict[str, Any]]:
        """
        Fetch the exam list once.

        Returns:
            Decoded payload, or None on any failure (counted as an error)
        """
        if not self.api_url:
            return None

        try:
            payload = await self._fetch_exams(self.api_url)
        except NetworkError as e:
            self.consecutive_errors += 1
            logger.debug(f"{e.message} ({self.consecutive_errors} in a row)")
            return None

        self.consecutive_errors = 0
        self.last_successful_poll = datetime.now(timezone.utc)
        return payload

    async def start_polling(
        self,
        on_oid_found: Optional[OidFoundCallback] = None,
        on_timeout: Optional[TimeoutCallback] = None,
        interval: float = Intervals.POLL_DEFAULT,
        max_duration: float = DEFAULT_MAX_DURATION,
    ) -> bool:
        """
        Start polling in the background.

        Polling stops after the first unseen ``oid`` is dispatched, when
        ``max_duration`` elapses, or when the API URL cannot be (re)captured;
        the latter two call ``on_timeout``.

        Args:
            on_oid_found: Coroutine called with ``(oid, exam)`` as a background task
            on_timeout: Coroutine called when polling gives up
            interval: Seconds between polls
            max_duration: Seconds before giving up

        Returns:
            True if polling started
        """
        await self.stop_polling()
        self._should_stop = False
        self.processing_oid = False
        self.processed_oids.clear()

        if not self.api_url:
            logger.info("Capturing API URL before polling...")
            try:
                await self.capture_api_url()
            except ApiUrlCaptureError:
                logger.error("Could not capture API URL, not polling")
                await self._fire(on_timeout)
                return False

        logger.info(f"Starting OID polling (every {interval}s, up to {max_duration}s)")
        self.is_polling = True
        self._timeout_task = asyncio.create_task(self._watchdog(max_duration, on_timeout))
        self._poll_task = asyncio.create_task(self._poll_loop(interval, on_oid_found, on_timeout))
        return True

    async def _watchdog(self, max_duration: float, on_timeout: Optional[TimeoutCallback]) -> None:
        await asyncio.sleep(max_duration)
        logger.info("Max polling duration reached")
        self._timeout_task = None
        await self.stop_polling()
        await self._fire(on_timeout)

    async def _poll_loop(
        self,
        interval: float,
        on_oid_found: Optional[OidFoundCallback],
        on_timeout: Optional[TimeoutCallback],
    ) -> None:
        while not self._should_stop:
            if self.processing_oid:
                await asyncio.sleep(interval)
                continue

            if not await self.check_and_recapture():
                self._poll_task = None
                await self.stop_polling()
                await self._fire(on_timeout)
                return

            try:
                dispatched = await self._poll_once(on_oid_found)
            except Exception as e:
                self.consecutive_errors += 1
                logger.error(f"Polling error ({self.consecutive_errors} in a row): {e!r}")
            else:
                if dispatched:
                    self._poll_task = None
                    await self.stop_polling()
                    return

            await asyncio.sleep(interval)

    async def _poll_once(self, on_oid_found: Optional[OidFoundCallback]) -> bool:
        """One poll; True once an unseen exam has been dispatched."""
        payload = await self.direct_api_call()
        if payload is None:
            return False
        exam = select_exam_with_oid(payload)
        if exam is None:
            logger.info(f"Polling... ({len(payload.get('DATA') or [])} exams, no OID)")
            return False
        oid = str(exam["oid"])
        if oid in self.processed_oids:
            return False
        self._dispatch(oid, exam, on_oid_found)
        return True

    def _dispatch(
        self, oid: str, exam: Dict[str, Any], on_oid_found: Optional[OidFoundCallback]
    ) -> None:
        logger.info(
            f"OID FOUND: {oid} (location: {exam.get('locationName') or 'Unknown'}, "
            f"event: {exam.get('eventName') or 'Unknown'})"
        )
        self.processed_oids.add(oid)
        if on_oid_found is None:
            return

        self.processing_oid = True

        async def run_callback() -> None:
            try:
                await on_oid_found(oid, exam)
            except Exception as e:
                logger.exception(f"OID handler failed for {oid}: {e}")
            finally:
                self.processing_oid = False

        task = asyncio.create_task(run_callback())
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    @staticmethod
    async def _fire(callback: Optional[TimeoutCallback]) -> None:
        if callback is None:
            return
        try:
            await callback()
        except Exception as e:
            logger.exception(f"Polling timeout handler failed: {e}")

    async def stop_polling(self) -> None:
        """Stop the poll loop and the max-duration timer."""
        self._should_stop = True
        current = asyncio.current_task()
        for task in (self._timeout_task, self._poll_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._timeout_task = None
        self._poll_task = None
        if self.is_polling:
            self.is_polling = False
            logger.info("Polling stopped")

    async def force_stop_polling(self, max_wait: float = 5.0) -> None:
        """
        Stop polling and give an in-flight OID handler time to finish.

        Args:
            max_wait: Seconds to wait for the handler
        """
        await self.stop_polling()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_wait
        while self.processing_oid and loop.time() < deadline:
            await asyncio.sleep(Intervals.FORCE_STOP_CHECK)

    def get_api_url(self) -> Optional[str]:
        return self.api_url

    def get_status(self) -> Dict[str, Any]:
        processed: List[str] = sorted(self.processed_oids)
        return {
            "is_polling": self.is_polling,
            "api_url": self.api_url,
            "processing_oid": self.processing_oid,
            "processed_oids": processed,
            "consecutive_errors": self.consecutive_errors,
            "last_successful_poll": (
                self.last_successful_poll.isoformat() if self.last_successful_poll else None
            ),
        }

    async def destroy(self) -> None:
        """Stop polling, forget state and release the HTTP session."""
        await self.force_stop_polling()
        self.api_url = None
        self.processed_oids.clear()
        self.consecutive_errors = 0
        await self.close()
