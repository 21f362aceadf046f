import asyncio
import logging
from dataclasses import dataclass, field
from typing import List
from .action_event import ActionEvent, ActionType, REPLAYABLE_TYPES, VALUE_TYPES
from ..config import ReplayConfig
from ..error_handler import BrowserDisconnectedError

logger = logging.getLogger(__name__)

SCROLL_JS = "(pos) => window.scrollTo({left: pos.x, top: pos.y, behavior: 'smooth'})"


@dataclass
class ReplayResult:
    """Outcome of replaying one screen's actions"""
    actions_recorded: int = 0
    actions_planned: int = 0
    actions_replayed: int = 0
    skipped: List[str] = field(default_factory=list)


def optimize_actions(actions: List[ActionEvent]) -> List[ActionEvent]:
    """Keep replayable actions and collapse redundant runs

    A run of input/change events on one selector keeps only its last event;
    a run of scrolls keeps only the last scroll.
    """
    replayable = [action for action in actions if action.type in REPLAYABLE_TYPES]
    optimized = []
    for action in replayable:
        previous = optimized[-1] if optimized else None
        if previous is not None:
            same_field = (action.type in VALUE_TYPES and previous.type in VALUE_TYPES
                          and action.selector == previous.selector)
            both_scroll = action.type == ActionType.SCROLL and previous.type == ActionType.SCROLL
            if same_field or both_scroll:
                optimized[-1] = action
                continue
        optimized.append(action)
    return optimized


class ActionReplayer:
    """Replays recorded actions against a browser driver

    A failing action is logged and skipped; only a lost browser stops the
    replay.
    """

    def __init__(self, config: ReplayConfig = None):
        self.config = config or ReplayConfig()
        self._handlers = {
            ActionType.CLICK: self._click,
            ActionType.DBLCLICK: self._click,
            ActionType.INPUT: self._fill,
            ActionType.CHANGE: self._fill,
            ActionType.SELECT: self._select,
            ActionType.KEYDOWN: self._keydown,
            ActionType.SCROLL: self._scroll,
            ActionType.NAVIGATION: self._navigation,
        }
        missing = REPLAYABLE_TYPES - set(self._handlers)
        if missing:
            raise RuntimeError(f"No replay handler for {sorted(t.value for t in missing)}")

    async def replay_actions(self, driver, actions: List[ActionEvent]) -> ReplayResult:
        planned = optimize_actions(actions)
        result = ReplayResult(actions_recorded=len(actions), actions_planned=len(planned))
        logger.info(f"Replaying {len(planned)} actions (optimized from {len(actions)})")

        for action in planned:
            try:
                executed = await self.replay_action(driver, action)
            except BrowserDisconnectedError:
                raise
            except Exception as e:
                if not driver.is_connected():
                    raise BrowserDisconnectedError(f"Browser closed during replay: {e}") from e
                logger.warning(f"Action failed (skipping): {action.type_name} {action.selector or ''} - {e}")
                result.skipped.append(f"{action.type_name} {action.selector or ''}".strip())
                continue
            if executed:
                result.actions_replayed += 1

        return result

    async def replay_action(self, driver, action: ActionEvent) -> bool:
        """Execute one action; returns False when there was nothing to execute"""
        handler = self._handlers.get(action.type)
        if handler is None:
            logger.debug(f"Not replaying informational action {action.type_name}")
            return False
        return await handler(driver, action)

    async def _wait_visible(self, driver, selector: str):
        try:
            await driver.wait_for_selector(selector, state='visible', timeout=self.config.selector_timeout)
        except Exception as e:
            # The action itself reports the failure if the element never shows up
            logger.debug(f"Selector {selector} not visible yet: {e}")

    async def _click(self, driver, action: ActionEvent) -> bool:
        if not action.selector:
            return False
        await self._wait_visible(driver, action.selector)
        click_count = 2 if action.type == ActionType.DBLCLICK else 1
        await driver.click(action.selector, click_count=click_count, timeout=self.config.action_timeout)
        return True

    async def _fill(self, driver, action: ActionEvent) -> bool:
        if not action.selector or action.value is None:
            return False
        await self._wait_visible(driver, action.selector)
        logger.debug(f"Filling {action.selector} = {action.value!r}")
        await driver.fill(action.selector, str(action.value), timeout=self.config.action_timeout)
        return True

    async def _select(self, driver, action: ActionEvent) -> bool:
        if not action.selector or not action.value:
            return False
        await self._wait_visible(driver, action.selector)
        await driver.select_option(action.selector, action.value, timeout=self.config.action_timeout)
        return True

    async def _keydown(self, driver, action: ActionEvent) -> bool:
        if not action.key:
            return False
        await driver.press(action.key)
        return True

    async def _scroll(self, driver, action: ActionEvent) -> bool:
        if not action.position:
            return False
        await driver.evaluate(SCROLL_JS, action.position)
        await asyncio.sleep(self.config.scroll_delay)
        return True

    async def _navigation(self, driver, action: ActionEvent) -> bool:
        logger.info(f"Navigation: {action.from_url} -> {action.to_url}")
        return False
