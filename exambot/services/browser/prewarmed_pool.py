"""Pool of headed browsers launched ahead of an exam release."""

import asyncio
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright

from exambot.constants import CONSENT_LOCAL_STORAGE
from exambot.core.config.config_models import BrowserPoolConfig
from exambot.services.browser.display import DisplayAllocator
from exambot.utils.masking import mask_proxy_server
from exambot.utils.security.proxy_manager import ProxyManager

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI,AutofillServerCommunication",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-default-apps",
    "--disable-background-networking",
    "--disable-breakpad",
    "--disable-sync",
    "--mute-audio",
    "--disable-blink-features=AutomationControlled",
    "--disable-save-password-bubble",
    "--disable-extensions",
    "--disable-popup-blocking",
    "--disable-component-update",
]

LAUNCH_TIMEOUT_MS = 30_000


def consent_init_script() -> str:
    """Init script that seeds the cookie-consent localStorage entries."""
    lines = [
        f"window.localStorage.setItem({json.dumps(key)}, {json.dumps(value)});"
        for key, value in CONSENT_LOCAL_STORAGE.items()
    ]
    return "try {\n  " + "\n  ".join(lines) + "\n} catch (e) {}"


@dataclass
class PrewarmedBrowser:
    """A launched browser with one open page, bound to a display."""

    number: int
    display: str
    browser: Browser
    context: BrowserContext
    page: Page
    is_ready: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    proxy_used: Optional[str] = None


class PrewarmedBrowserPool:
    """
    Fixed-size pool of browsers, each on its own virtual display.

    Browsers are numbered from 1. Warm-up launches the missing browsers in
    parallel and then pre-navigates them to the site so the first booking
    request reuses an open connection.
    """

    def __init__(
        self,
        config: Optional[BrowserPoolConfig] = None,
        proxy_manager: Optional[ProxyManager] = None,
    ):
        """
        Initialize browser pool.

        Args:
            config: Browser pool configuration
            proxy_manager: Optional ProxyManager handing out one proxy per browser
        """
        self.config = config or BrowserPoolConfig()
        self.proxy_manager = proxy_manager
        self.displays = DisplayAllocator(self.config.size, self.config.first_display)
        self.browsers: Dict[int, PrewarmedBrowser] = {}
        self.warming_up: set = set()
        self.pre_navigated = False
        self._playwright: Optional[Playwright] = None
        self._playwright_lock = asyncio.Lock()

        logger.info(f"PrewarmedBrowserPool initialized (size: {self.config.size})")

    async def _get_playwright(self) -> Playwright:
        async with self._playwright_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright

    def _launch_env(self, display: str) -> Dict[str, str]:
        env = dict(os.environ)
        env["DISPLAY"] = display
        env["XAUTHORITY"] = os.environ.get("XAUTHORITY", self.config.xauthority)
        env.setdefault("HOME", "/tmp")
        return env

    async def _block_heavy_resources(self, route: Route) -> None:
        if route.request.resource_type in self.config.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def prewarm_browser(self, number: int, display: str) -> Optional[PrewarmedBrowser]:
        """
        Launch one headed browser on a display and prepare its page.

        Args:
            number: Browser number within the pool
            display: Allocated X display

        Returns:
            The prewarmed browser, or None if launching failed
        """
        logger.info(f"Pre-warming browser {number} on {display}...")

        proxy_config = None
        proxy_label = None
        if self.proxy_manager is not None and self.proxy_manager.enabled:
            proxy = self.proxy_manager.get_next_proxy()
            if proxy:
                proxy_config = self.proxy_manager.get_playwright_proxy(proxy=proxy)
                proxy_label = mask_proxy_server(proxy["host"], proxy["port"])
                logger.info(f"Proxy {proxy_label} -> browser {number}")

        browser = None
        try:
            playwright = await self._get_playwright()
            launch_options: Dict[str, Any] = {
                "headless": self.config.headless,
                "args": BROWSER_ARGS,
                "env": self._launch_env(display),
                "timeout": LAUNCH_TIMEOUT_MS,
            }
            if self.config.executable_path and os.path.exists(self.config.executable_path):
                launch_options["executable_path"] = self.config.executable_path
            if proxy_config:
                launch_options["proxy"] = proxy_config

            browser = await playwright.chromium.launch(**launch_options)
            context = await browser.new_context(viewport=None)
            context.set_default_timeout(self.config.default_timeout)
            context.set_default_navigation_timeout(self.config.default_timeout)
            await context.add_init_script(consent_init_script())
            await context.route("**/*", self._block_heavy_resources)
            page = await context.new_page()
        except Exception as e:
            logger.error(f"Pre-warm failed for browser {number}: {e}")
            if browser is not None:
                try:
                    await browser.close()
                except Exception as close_error:
                    logger.debug(f"Error closing failed browser {number}: {close_error}")
            return None

        logger.info(f"Pre-warmed browser {number}")
        return PrewarmedBrowser(
            number=number,
            display=display,
            browser=browser,
            context=context,
            page=page,
            proxy_used=proxy_label,
        )

    async def _warm_one(self, number: int) -> None:
        try:
            display = await self.displays.allocate()
            if display is None:
                logger.warning(f"No display for browser {number}")
                return
            prewarmed = await self.prewarm_browser(number, display)
            if prewarmed is None:
                self.displays.release(display)
                return
            self.browsers[number] = prewarmed
            logger.info(f"Browser {number} warmed ({len(self.browsers)}/{self.config.size})")
        finally:
            self.warming_up.discard(number)

    async def warmup(self, count: Optional[int] = None) -> int:
        """
        Launch browsers ``1..count`` that are not already running or warming.

        Args:
            count: Number of browsers (defaults to the pool size)

        Returns:
            Number of ready browsers afterwards
        """
        count = min(count or self.config.size, self.config.size)
        logger.info(f"Warming up {count} browsers...")

        pending = []
        for number in range(1, count + 1):
            if number in self.warming_up or number in self.browsers:
                continue
            self.warming_up.add(number)
            pending.append(self._warm_one(number))

        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Browser warmup failed: {result}")

        logger.info(f"Warming complete! {len(self.browsers)}/{count} ready")
        await self.pre_navigate_browsers()
        return self.get_ready_count()

    async def _pre_navigate(self, prewarmed: PrewarmedBrowser) -> bool:
        try:
            await prewarmed.page.goto(
                self.config.warmup_url,
                wait_until="domcontentloaded",
                timeout=self.config.warmup_timeout,
            )
        except Exception as e:
            logger.warning(f"Pre-navigation failed for browser {prewarmed.number}: {e}")
            return False
        return True

    async def pre_navigate_browsers(self) -> int:
        """
        Open the warm-up URL in every ready browser (once per warm-up).

        Returns:
            Number of browsers that navigated successfully
        """
        if self.pre_navigated:
            return 0
        browsers = self.get_all_ready_browsers()
        logger.info(f"Pre-navigating {len(browsers)} browsers to {self.config.warmup_url}...")
        results = await asyncio.gather(*(self._pre_navigate(b) for b in browsers))
        successful = sum(1 for ok in results if ok)
        logger.info(f"Pre-navigation complete: {successful}/{len(browsers)} successful")
        self.pre_navigated = True
        return successful

    def get_all_ready_browsers(self) -> List[PrewarmedBrowser]:
        """Ready browsers ordered by number."""
        return [self.browsers[n] for n in sorted(self.browsers) if self.browsers[n].is_ready]

    def get_prewarmed_browser(self, number: int) -> Optional[PrewarmedBrowser]:
        prewarmed = self.browsers.get(number)
        if prewarmed and prewarmed.is_ready:
            return prewarmed
        return None

    def remove_browser(self, number: int) -> None:
        """Forget a browser without closing it."""
        self.browsers.pop(number, None)

    async def close_browser(self, number: int) -> None:
        prewarmed = self.browsers.pop(number, None)
        if prewarmed is None:
            return
        try:
            await prewarmed.browser.close()
            logger.info(f"Closed browser {number}")
        except Exception as e:
            logger.error(f"Close error for browser {number}: {e}")
        finally:
            self.displays.release(prewarmed.display)

    async def close_all_browsers(self) -> None:
        """Close every browser and release all displays."""
        logger.info(f"Closing {len(self.browsers)} browsers...")
        await asyncio.gather(*(self.close_browser(n) for n in list(self.browsers)))
        self.browsers.clear()
        self.displays.release_all()
        self.pre_navigated = False

        async with self._playwright_lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("All browsers closed")

    def get_status(self) -> Dict[str, Any]:
        return {
            "total_browsers": len(self.browsers),
            "ready_browsers": len(self.get_all_ready_browsers()),
            "warming_browsers": len(self.warming_up),
            "displays": [self.browsers[n].display for n in sorted(self.browsers)],
            "browser_numbers": sorted(self.browsers),
            "pre_navigated": self.pre_navigated,
        }

    def all_browsers_ready(self) -> bool:
        return not self.warming_up and bool(self.browsers)

    def get_ready_count(self) -> int:
        return len(self.get_all_ready_browsers())

    async def __aenter__(self) -> "PrewarmedBrowserPool":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close_all_browsers()
