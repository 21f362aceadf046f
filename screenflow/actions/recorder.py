import logging
from dataclasses import replace
from typing import Callable, Dict, List
from .action_event import ActionEvent, ActionType

logger = logging.getLogger(__name__)

RECORD_BINDING = '__recordActions'

# Installed as an init script; %(interval)d is the batch flush interval in ms
RECORDER_SCRIPT = """
(() => {
    if (window.__screenflowRecorder) return;
    window.__screenflowRecorder = true;

    const TOOL_SELECTOR = '#capture-modal, #capture-overlay, #replay-wait-overlay';
    let buffer = [];
    let batchTimer = null;

    function flush() {
        if (buffer.length) {
            try { window.__recordActions(buffer); } catch (e) { /* binding not ready */ }
            buffer = [];
        }
        batchTimer = null;
    }

    function queue(action) {
        buffer.push(action);
        if (!batchTimer) batchTimer = setTimeout(flush, %(interval)d);
    }

    window.addEventListener('beforeunload', flush);

    function fromTool(target) {
        return target && target.closest && target.closest(TOOL_SELECTOR);
    }

    function selectorFor(el) {
        if (!el || el === document.body) return 'body';
        if (el.dataset && el.dataset.testid) return `[data-testid="${el.dataset.testid}"]`;
        if (el.id && !/^\\d/.test(el.id)) {
            try {
                if (document.querySelectorAll('#' + CSS.escape(el.id)).length === 1) {
                    return '#' + CSS.escape(el.id);
                }
            } catch (e) { /* invalid id */ }
        }
        if (el.name) {
            try {
                if (document.querySelectorAll(`[name="${el.name}"]`).length === 1) {
                    return `[name="${el.name}"]`;
                }
            } catch (e) { /* invalid name */ }
        }

        const parts = [];
        let current = el;
        let depth = 0;
        while (current && current !== document.body && depth < 4) {
            if (current.id && !/^\\d/.test(current.id)) {
                parts.unshift('#' + current.id);
                break;
            }
            if (current.dataset && current.dataset.testid) {
                parts.unshift(`[data-testid="${current.dataset.testid}"]`);
                break;
            }
            let segment = current.tagName.toLowerCase();
            const parent = current.parentElement;
            if (parent) {
                const sameTag = Array.from(parent.children).filter(c => c.tagName === current.tagName);
                if (sameTag.length > 1) segment += `:nth-of-type(${sameTag.indexOf(current) + 1})`;
            }
            parts.unshift(segment);
            current = current.parentElement;
            depth++;
        }
        return parts.join(' > ') || el.tagName.toLowerCase();
    }

    let lastInputEl = null;
    let lastInputValue = '';

    function recordInput(el) {
        if (!el || !el.value) return;
        if (el === lastInputEl && el.value === lastInputValue) return;
        lastInputEl = el;
        lastInputValue = el.value;
        queue({type: 'input', selector: selectorFor(el), value: el.value, time: Date.now()});
    }

    document.addEventListener('click', (e) => {
        if (fromTool(e.target)) return;
        flush();
        const tag = e.target.tagName;
        if (tag === 'INPUT' || tag === 'TEXTAREA') return;
        const text = (e.target.innerText || '').replace(/\\s+/g, ' ').trim();
        queue({type: 'click', selector: selectorFor(e.target), text: text.substring(0, 30), time: Date.now()});
    }, {capture: true, passive: true});

    document.addEventListener('dblclick', (e) => {
        if (fromTool(e.target)) return;
        queue({type: 'dblclick', selector: selectorFor(e.target), time: Date.now()});
    }, {capture: true, passive: true});

    document.addEventListener('blur', (e) => {
        if (fromTool(e.target)) return;
        const tag = e.target.tagName;
        if (tag === 'INPUT' || tag === 'TEXTAREA') recordInput(e.target);
    }, {capture: true, passive: true});

    document.addEventListener('keydown', (e) => {
        if (fromTool(e.target)) return;
        const tag = e.target.tagName;
        if (e.key === 'Enter' && (tag === 'INPUT' || tag === 'TEXTAREA')) {
            recordInput(e.target);
            queue({type: 'keydown', selector: selectorFor(e.target), key: 'Enter', time: Date.now()});
        }
    }, {capture: true, passive: true});

    document.addEventListener('change', (e) => {
        if (fromTool(e.target)) return;
        if (e.target.tagName === 'SELECT') {
            queue({type: 'select', selector: selectorFor(e.target), value: e.target.value, time: Date.now()});
        } else if (e.target.type === 'checkbox' || e.target.type === 'radio') {
            queue({type: 'click', selector: selectorFor(e.target), time: Date.now()});
        }
    }, {capture: true, passive: true});

    let inputTimer = null;
    document.addEventListener('input', (e) => {
        if (fromTool(e.target)) return;
        const tag = e.target.tagName;
        if (tag !== 'INPUT' && tag !== 'TEXTAREA') return;
        clearTimeout(inputTimer);
        inputTimer = setTimeout(() => recordInput(e.target), 300);
    }, {capture: true, passive: true});

    let lastUrl = location.href;
    function trackNavigation(trigger) {
        if (location.href !== lastUrl) {
            queue({type: 'navigation', from: lastUrl, to: location.href, trigger: trigger, time: Date.now()});
            lastUrl = location.href;
        }
    }
    const pushState = history.pushState;
    const replaceState = history.replaceState;
    history.pushState = function (...args) { pushState.apply(this, args); trackNavigation('pushState'); };
    history.replaceState = function (...args) { replaceState.apply(this, args); trackNavigation('replaceState'); };
    window.addEventListener('popstate', () => trackNavigation('popstate'));

    let scrollTimer = null;
    window.addEventListener('scroll', () => {
        clearTimeout(scrollTimer);
        scrollTimer = setTimeout(() => {
            queue({type: 'scroll', position: {x: Math.round(scrollX), y: Math.round(scrollY)}, time: Date.now()});
        }, 500);
    }, {passive: true});
})();
"""


class ActionRecorder:
    """Receives batched interaction events from the page and buffers them

    Consecutive ``input`` events on the same selector collapse into one
    buffered entry carrying the latest value and time. The entry is replaced,
    not changed in place, so a snapshot keeps the values it was taken with.
    """

    def __init__(self, batch_interval: float = 0.5, on_action: Callable[[ActionEvent], None] = None):
        self.batch_interval = batch_interval
        self.on_action = on_action
        self.pending: List[ActionEvent] = []
        self.enabled = True
        self.stats = {'actions_recorded': 0, 'inputs_coalesced': 0}

    @property
    def script(self) -> str:
        return RECORDER_SCRIPT % {'interval': int(self.batch_interval * 1000)}

    async def install(self, driver):
        """Expose the recording binding and inject the recorder into every page"""
        await driver.expose_binding(RECORD_BINDING, self._on_batch)
        await driver.add_init_script(self.script)
        logger.info("Action recorder installed")

    def _on_batch(self, source, batch):
        if not self.enabled:
            return
        self.record_batch(batch or [])

    def record_batch(self, batch: List[Dict]):
        for item in batch:
            try:
                event = ActionEvent.from_dict(item)
            except (AttributeError, TypeError) as e:
                logger.debug(f"Ignoring malformed action {item!r:.120}: {e}")
                continue
            self.record(event)

    def record(self, event: ActionEvent):
        last = self.pending[-1] if self.pending else None
        if (last is not None and event.type == ActionType.INPUT and last.type == ActionType.INPUT
                and last.selector == event.selector):
            self.pending[-1] = replace(last, value=event.value, time=event.time)
            self.stats['inputs_coalesced'] += 1
            return

        self.pending.append(event)
        self.stats['actions_recorded'] += 1
        if self.on_action is not None:
            self.on_action(event)
        logger.debug(f"[Action] {event.type_name}: {(event.selector or '')[:40]}")

    def snapshot(self) -> List[ActionEvent]:
        return list(self.pending)

    def release(self, actions: List[ActionEvent]):
        """Forget actions that were stored with a screen; later ones stay buffered"""
        handled = {id(action) for action in actions}
        self.pending = [action for action in self.pending if id(action) not in handled]

    def clear(self):
        self.pending = []

    @staticmethod
    def last_click_text(actions: List[ActionEvent]) -> str:
        """Text of the last recorded click, used as the edge label"""
        for action in reversed(actions):
            if action.type == ActionType.CLICK and action.text:
                return action.text
        return ''
