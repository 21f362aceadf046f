"""
Operator checkpoints: the only place a regression run waits for a human
"""

import asyncio
import logging
from enum import Enum
from dataclasses import dataclass
from typing import List, Optional
from playwright.async_api import Error as PlaywrightError
from ..error_handler import BrowserDisconnectedError

logger = logging.getLogger(__name__)

CONTINUE_BINDING = '__replayContinue'

OVERLAY_JS = """
(info) => {
    const old = document.getElementById('replay-wait-overlay');
    if (old) old.remove();

    const overlay = document.createElement('div');
    overlay.id = 'replay-wait-overlay';
    overlay.style.cssText = 'position:fixed;inset:0;z-index:2147483647;display:flex;align-items:center;' +
        'justify-content:center;background:rgba(0,0,0,0.6);font-family:system-ui,-apple-system,sans-serif';

    const card = document.createElement('div');
    card.style.cssText = 'background:#fff;padding:28px;border-radius:16px;width:460px;max-width:92vw;' +
        'box-shadow:0 16px 48px rgba(0,0,0,0.4);text-align:center';

    const title = document.createElement('h3');
    title.textContent = info.title;
    title.style.cssText = 'margin:0 0 8px;font-size:18px;color:#333';

    const error = document.createElement('p');
    error.textContent = info.error;
    error.style.cssText = 'margin:0 0 12px;font-size:13px;color:#ef4444;background:#fef2f2;' +
        'padding:8px 12px;border-radius:8px;word-break:break-word';

    const target = document.createElement('div');
    target.style.cssText = 'margin-bottom:16px;text-align:left;background:#f8fafc;padding:12px;' +
        'border-radius:8px;font-size:13px;color:#555;word-break:break-all';
    target.textContent = 'Target screen: ' + info.screen + (info.url ? ' (' + info.url + ')' : '') +
        '. Navigate there in this browser, then press Continue.';

    const buttons = document.createElement('div');
    buttons.style.cssText = 'display:flex;gap:8px;justify-content:center';
    const skip = document.createElement('button');
    skip.id = 'replay-skip-btn';
    skip.textContent = 'Skip';
    skip.style.cssText = 'padding:10px 24px;border:1px solid #ddd;border-radius:8px;background:#fff;cursor:pointer';
    const proceed = document.createElement('button');
    proceed.id = 'replay-continue-btn';
    proceed.textContent = 'Continue';
    proceed.style.cssText = 'padding:10px 24px;border:none;border-radius:8px;background:#3b82f6;' +
        'color:#fff;cursor:pointer;font-weight:600';
    buttons.append(skip, proceed);

    card.append(title, error, target, buttons);
    overlay.appendChild(card);
    document.body.appendChild(overlay);

    proceed.addEventListener('click', () => { overlay.remove(); window.__replayContinue(true); });
    skip.addEventListener('click', () => { overlay.remove(); window.__replayContinue(false); });
}
"""

DISMISS_JS = """
() => {
    const overlay = document.getElementById('replay-wait-overlay');
    if (overlay) overlay.remove();
}
"""


class CheckpointDecision(Enum):
    CONTINUE = "continue"
    SKIP = "skip"


@dataclass
class CheckpointRequest:
    """What the operator is shown when a screen cannot proceed on its own"""
    screen_id: str
    screen_name: str
    target_url: str
    error: str
    reason: str = 'error'  # error, url_mismatch

    @property
    def title(self) -> str:
        return 'URL mismatch' if self.reason == 'url_mismatch' else 'Navigation error'


class CheckpointChannel:
    """Awaitable continue/skip decision resolved by an outside signal

    ``request`` waits on a future until ``resolve`` is called. Without a
    timeout the wait is unbounded; an expired timeout counts as skip.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.history: List[dict] = []
        self._future: Optional[asyncio.Future] = None

    @property
    def waiting(self) -> bool:
        return self._future is not None and not self._future.done()

    async def install(self):
        """Hook for channels that need setup before the first request"""

    async def request(self, request: CheckpointRequest) -> CheckpointDecision:
        self._future = asyncio.get_event_loop().create_future()
        logger.info(f"Checkpoint at '{request.screen_id}' ({request.reason}): {request.error}")
        await self._present(request)

        try:
            if self.timeout is None:
                decision = await self._future
            else:
                decision = await asyncio.wait_for(self._future, self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No decision for '{request.screen_id}' within {self.timeout}s, skipping")
            decision = CheckpointDecision.SKIP
            await self._dismiss()
        finally:
            self._future = None

        self.history.append({'screenId': request.screen_id, 'reason': request.reason,
                             'decision': decision.value})
        logger.info(f"Checkpoint at '{request.screen_id}' resolved: {decision.value}")
        return decision

    def resolve(self, decision: CheckpointDecision):
        if self.waiting:
            self._future.set_result(decision)

    async def _present(self, request: CheckpointRequest):
        """Show the request to the operator"""

    async def _dismiss(self):
        """Remove whatever ``_present`` put on screen"""


class OverlayCheckpoint(CheckpointChannel):
    """Shows a Continue/Skip overlay in the browser under test"""

    def __init__(self, driver, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.driver = driver
        self._installed = False

    async def install(self):
        if self._installed:
            return
        await self.driver.expose_binding(CONTINUE_BINDING, self._on_continue)
        self._installed = True

    def _on_continue(self, source, confirmed):
        self.resolve(CheckpointDecision.CONTINUE if confirmed else CheckpointDecision.SKIP)

    async def _present(self, request: CheckpointRequest):
        await self.install()
        info = {
            'title': request.title,
            'error': request.error,
            'screen': request.screen_name,
            'url': request.target_url,
        }
        try:
            await self.driver.evaluate(OVERLAY_JS, info)
        except (PlaywrightError, BrowserDisconnectedError) as e:
            logger.error(f"Could not show the checkpoint overlay, skipping '{request.screen_id}': {e}")
            self.resolve(CheckpointDecision.SKIP)

    async def _dismiss(self):
        try:
            await self.driver.evaluate(DISMISS_JS)
        except (PlaywrightError, BrowserDisconnectedError) as e:
            logger.debug(f"Overlay already gone: {e}")


class ConsoleCheckpoint(CheckpointChannel):
    """Asks on the terminal; an answer starting with 's' skips"""

    async def _present(self, request: CheckpointRequest):
        print(f"\n⏸️  {request.title} at '{request.screen_name}'")
        print(f"   {request.error}")
        if request.target_url:
            print(f"   Target: {request.target_url}")
        asyncio.ensure_future(self._read_answer())

    async def _read_answer(self):
        loop = asyncio.get_event_loop()
        answer = await loop.run_in_executor(None, input, "   [c]ontinue or [s]kip? ")
        decision = CheckpointDecision.SKIP if answer.strip().lower().startswith('s') \
            else CheckpointDecision.CONTINUE
        self.resolve(decision)
