"""
Browser driver - the single place that talks to Playwright
"""

import json
import logging
from typing import Any, Callable, Dict, Optional
from playwright.async_api import async_playwright, Error as PlaywrightError
from ..config import BrowserConfig
from ..error_handler import BrowserDisconnectedError

logger = logging.getLogger(__name__)

STORAGE_INIT_SCRIPT = """
((storage) => {
    for (const [area, values] of Object.entries(storage)) {
        const target = area === 'sessionStorage' ? window.sessionStorage : window.localStorage;
        for (const [key, value] of Object.entries(values || {})) {
            try { target.setItem(key, value); } catch (e) { /* storage disabled */ }
        }
    }
})(%s);
"""


class BrowserDriver:
    """Owns one Chromium browser, context and page

    Timeouts are given in seconds and converted for Playwright.
    """

    def __init__(self, config: BrowserConfig = None):
        self.config = config or BrowserConfig()
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None
        self._disconnect_callbacks = []

    async def launch(self, viewport: Dict[str, int], user_agent: str = None):
        """Start the browser and open a single page"""
        logger.info(f"Launching browser ({viewport['width']}x{viewport['height']}, "
                    f"headless={self.config.headless})")
        self.playwright = await async_playwright().start()
        launch_options = {'headless': self.config.headless, 'args': self.config.launch_args}
        if self.config.executable_path:
            launch_options['executable_path'] = self.config.executable_path
        self.browser = await self.playwright.chromium.launch(**launch_options)
        self.browser.on('disconnected', self._handle_disconnect)

        context_options = {
            'viewport': viewport,
            'ignore_https_errors': self.config.ignore_https_errors,
        }
        if user_agent:
            context_options['user_agent'] = user_agent
        self.context = await self.browser.new_context(**context_options)
        self.page = await self.context.new_page()
        return self.page

    def on_disconnect(self, callback: Callable[[], Any]):
        self._disconnect_callbacks.append(callback)

    def _handle_disconnect(self, *args):
        logger.warning("Browser disconnected")
        for callback in self._disconnect_callbacks:
            callback()

    def is_connected(self) -> bool:
        return self.browser is not None and self.browser.is_connected() and not self.page.is_closed()

    def _require_page(self):
        if self.page is None or not self.is_connected():
            raise BrowserDisconnectedError("Browser is not running")
        return self.page

    @staticmethod
    def _ms(seconds: Optional[float]) -> Optional[float]:
        return None if seconds is None else seconds * 1000

    @property
    def current_url(self) -> str:
        return self.page.url if self.page is not None else ''

    async def navigate(self, url: str, timeout: float = 30.0, wait_until: str = 'networkidle'):
        page = self._require_page()
        return await page.goto(url, timeout=self._ms(timeout), wait_until=wait_until)

    async def wait_for_network_idle(self, timeout: float = 15.0) -> bool:
        """Bounded wait for network idle; False when the wait timed out"""
        page = self._require_page()
        try:
            await page.wait_for_load_state('networkidle', timeout=self._ms(timeout))
            return True
        except PlaywrightError as e:
            logger.debug(f"Network did not go idle within {timeout}s: {e}")
            return False

    async def wait_for_selector(self, selector: str, state: str = 'visible', timeout: float = 5.0):
        page = self._require_page()
        return await page.wait_for_selector(selector, state=state, timeout=self._ms(timeout))

    async def click(self, selector: str, click_count: int = 1, timeout: float = 2.0):
        page = self._require_page()
        await page.click(selector, click_count=click_count, timeout=self._ms(timeout))

    async def fill(self, selector: str, value: str, timeout: float = 2.0):
        page = self._require_page()
        await page.fill(selector, value, timeout=self._ms(timeout))

    async def select_option(self, selector: str, value: str, timeout: float = 2.0):
        page = self._require_page()
        await page.select_option(selector, value, timeout=self._ms(timeout))

    async def press(self, key: str):
        page = self._require_page()
        await page.keyboard.press(key)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        page = self._require_page()
        return await page.evaluate(expression, arg)

    async def content(self) -> str:
        page = self._require_page()
        return await page.content()

    async def new_cdp_session(self):
        self._require_page()
        return await self.context.new_cdp_session(self.page)

    async def expose_binding(self, name: str, callback: Callable):
        await self.context.expose_binding(name, callback)

    async def add_init_script(self, script: str):
        await self.context.add_init_script(script=script)

    async def apply_auth(self, auth: Optional[Dict[str, Any]]):
        """Inject stored cookies and web storage before the first navigation"""
        if not auth:
            return
        cookies = auth.get('cookies') or []
        if cookies:
            await self.context.add_cookies(cookies)
        storage = {area: auth[area] for area in ('localStorage', 'sessionStorage') if auth.get(area)}
        if storage:
            await self.add_init_script(STORAGE_INIT_SCRIPT % json.dumps(storage))
        logger.info(f"Injected auth: {len(cookies)} cookies, {sorted(storage)} storage")

    async def close(self):
        self._disconnect_callbacks = []
        if self.browser is not None:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser already closed: {e}")
        if self.playwright is not None:
            await self.playwright.stop()
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None
