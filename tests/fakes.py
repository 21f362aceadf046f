"""Scripted browser driver and sample pages shared by the tests"""

import asyncio
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from screenflow.dom.dom_serializer import PAGE_META_JS, SNAPSHOT_JS
from screenflow.network.api_exchange import ApiExchange


def page_tree(button_color='rgb(59, 130, 246)', title_text='Welcome', extra_children=None):
    """Raw in-page tree for a small page with a heading and a button"""
    children = [
        {'t': 'h1', 'a': {'id': 'title'}, 'css': {'fontSize': '32px'},
         'rect': {'x': 0, 'y': 0, 'w': 400, 'h': 40},
         'c': [{'t': '#text', 'v': title_text}]},
        {'t': 'button', 'a': {'id': 'submit', 'class': 'btn primary'},
         'css': {'color': button_color, 'padding': '8px'},
         'rect': {'x': 10, 'y': 60, 'w': 120, 'h': 36},
         'c': [{'t': '#text', 'v': 'Sign in'}]},
    ]
    children.extend(extra_children or [])
    return {'t': 'body', 'c': children}


def snapshot_result(url='https://app.example.com/login', tree=None, title='Example'):
    return {
        'html': f'<html><head><title>{title}</title></head><body><h1>Welcome</h1></body></html>',
        'dom': tree if tree is not None else page_tree(),
        'url': url,
        'title': title,
        'scroll': {'x': 0, 'y': 0},
        'viewport': {'w': 1440, 'h': 900},
    }


class FakeCdpSession:
    """Records CDP commands and lets tests fire network events"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.handlers = {}
        self.sent = []

    async def send(self, method, params=None):
        self.sent.append((method, params))
        response = self.responses.get(method)
        if callable(response):
            return response(params)
        return response

    def on(self, event, handler):
        self.handlers[event] = handler

    def emit(self, event, params):
        return self.handlers[event](params)


class FakeDriver:
    """Stands in for BrowserDriver; every call is recorded in ``calls``

    ``snapshots`` are returned one after another (the last one repeats) for
    page snapshots; ``missing_selectors`` make clicks and fills time out.
    Clicking a selector in ``click_targets`` moves to its url; clicking one
    in ``disconnect_on`` closes the browser mid-action.
    """

    def __init__(self, config=None, url='about:blank', snapshots=None, page_meta=None,
                 missing_selectors=None, navigate_error=None, navigate_to=None, click_targets=None,
                 disconnect_on=None):
        self.config = config
        self.url = url
        self.snapshots = list(snapshots or [snapshot_result()])
        self.page_meta = page_meta
        self.missing_selectors = set(missing_selectors or [])
        self.navigate_error = navigate_error
        self.navigate_to = navigate_to
        self.click_targets = dict(click_targets or {})
        self.disconnect_on = set(disconnect_on or [])
        self.connected = False
        self.closed = False
        self.calls = []
        self.bindings = {}
        self.init_scripts = []
        self.disconnect_callbacks = []
        self.cdp = FakeCdpSession()
        self.html = '<html><body>error state</body></html>'

    @property
    def current_url(self):
        return self.url

    async def launch(self, viewport, user_agent=None):
        self.calls.append(('launch', viewport, user_agent))
        self.connected = True

    def on_disconnect(self, callback):
        self.disconnect_callbacks.append(callback)

    def disconnect(self):
        self.connected = False
        for callback in self.disconnect_callbacks:
            callback()

    def is_connected(self):
        return self.connected

    async def navigate(self, url, timeout=30.0, wait_until='networkidle'):
        self.calls.append(('navigate', url))
        if self.navigate_error is not None:
            raise self.navigate_error
        self.url = self.navigate_to or url

    async def wait_for_network_idle(self, timeout=15.0):
        self.calls.append(('wait_idle', timeout))
        return True

    async def wait_for_selector(self, selector, state='visible', timeout=5.0):
        self.calls.append(('wait_for_selector', selector))
        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(f"waiting for {selector}")

    async def click(self, selector, click_count=1, timeout=2.0):
        if selector in self.disconnect_on:
            self.disconnect()
            raise PlaywrightError("Target page, context or browser has been closed")
        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(f"click {selector}")
        self.calls.append(('click', selector, click_count))
        if selector in self.click_targets:
            self.url = self.click_targets[selector]

    async def fill(self, selector, value, timeout=2.0):
        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(f"fill {selector}")
        self.calls.append(('fill', selector, value))

    async def select_option(self, selector, value, timeout=2.0):
        self.calls.append(('select', selector, value))

    async def press(self, key):
        self.calls.append(('press', key))

    async def evaluate(self, expression, arg=None):
        if expression == SNAPSHOT_JS:
            self.calls.append(('snapshot',))
            result = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
            if isinstance(result, Exception):
                raise result
            return result
        if expression == PAGE_META_JS:
            return self.page_meta or {
                'url': self.url, 'title': 'Example',
                'scroll': {'x': 0, 'y': 0}, 'viewport': {'w': 1440, 'h': 900},
            }
        self.calls.append(('evaluate', arg))
        return None

    async def content(self):
        return self.html

    async def new_cdp_session(self):
        return self.cdp

    async def expose_binding(self, name, callback):
        self.bindings[name] = callback

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def apply_auth(self, auth):
        self.calls.append(('apply_auth', auth))

    async def close(self):
        self.closed = True
        self.connected = False
        self.disconnect_callbacks = []


def make_exchange(request_id='1', method='GET', url='https://app.example.com/api/users',
                  origin_path='/login', status=200, body=None, **kwargs):
    return ApiExchange(
        id=request_id,
        method=method,
        url=url,
        origin_path=origin_path,
        origin_url=f"https://app.example.com{origin_path}",
        status=status,
        response_body=body if body is not None else {'users': [{'id': 1, 'name': 'Ada'}]},
        time=1700000000000,
        duration=12,
        **kwargs
    )


async def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass"""
    waited = 0.0
    while not predicate() and waited < timeout:
        await asyncio.sleep(interval)
        waited += interval
    return predicate()
