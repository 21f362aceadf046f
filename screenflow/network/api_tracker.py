import time
import json
import base64
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse
from .api_exchange import ApiExchange, ExchangeState
from .tracker_filter import TrackerFilter
from .response_deduplicator import ResponseDeduplicator

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_body(raw: Optional[str]) -> Any:
    """JSON-decode a body when possible, otherwise keep the raw text"""
    if raw is None or raw == '':
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def path_of(url: str) -> str:
    try:
        return urlparse(url).path or '/'
    except ValueError:
        return '/'


class ApiTracker:
    """Tracks API exchanges from CDP network events

    Each request moves Sent -> Responded -> Finished, or Sent -> Failed.
    Only final exchanges leave the in-flight map; they are appended to the
    pending list (waiting for a screen) and to the session-wide list.
    """

    def __init__(self, tracker_filter: TrackerFilter = None,
                 deduplicator: Optional[ResponseDeduplicator] = None,
                 screen_provider: Callable[[], Optional[str]] = None,
                 on_complete: Callable[[ApiExchange], None] = None):
        self.filter = tracker_filter or TrackerFilter()
        self.deduplicator = deduplicator
        self.screen_provider = screen_provider
        self.on_complete = on_complete
        self.cdp = None

        self.in_flight: Dict[str, ApiExchange] = {}
        self.pending: List[ApiExchange] = []
        self.completed: List[ApiExchange] = []
        self._post_data_tasks: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

        self.stats = {
            'requests_tracked': 0,
            'tracker_blocked': 0,
            'malformed_events': 0,
            'finished': 0,
            'failed': 0,
        }

    async def attach(self, cdp_session):
        """Enable network capture on a CDP session and subscribe to its events"""
        self.cdp = cdp_session
        await cdp_session.send('Network.enable')
        cdp_session.on('Network.requestWillBeSent', self.on_request_sent)
        cdp_session.on('Network.responseReceived', self.on_response_received)
        cdp_session.on('Network.loadingFinished',
                       lambda params: self._spawn(self.on_loading_finished(params)))
        cdp_session.on('Network.loadingFailed',
                       lambda params: self._spawn(self.on_loading_failed(params)))
        logger.info("CDP network capture enabled")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def on_request_sent(self, params: Dict):
        try:
            request_id = params['requestId']
            request = params['request']
            url = request['url']
        except (KeyError, TypeError):
            self.stats['malformed_events'] += 1
            logger.debug(f"Ignoring malformed requestWillBeSent event: {params!r:.200}")
            return

        resource_type = params.get('type', '')
        if not self.filter.is_api_request(url, resource_type):
            return
        if self.filter.is_tracker(url):
            self.stats['tracker_blocked'] += 1
            logger.debug(f"Blocked tracker: {url[:80]}")
            return
        if not self.filter.should_track(url, resource_type):
            return

        origin_url = params.get('documentURL') or ''
        exchange = ApiExchange(
            id=request_id,
            method=request.get('method', 'GET'),
            url=url,
            origin_url=origin_url,
            origin_path=path_of(origin_url),
            resource_type=resource_type,
            req_headers=self.filter.clean_headers(request.get('headers')),
            request_body=parse_body(request.get('postData')),
            time=now_ms(),
            screen_id=self.screen_provider() if self.screen_provider else None,
            has_post_data=bool(request.get('hasPostData')),
        )
        self.in_flight[request_id] = exchange
        self.stats['requests_tracked'] += 1

        if exchange.has_post_data and not request.get('postData') and self.cdp is not None:
            self._post_data_tasks[request_id] = self._spawn(self._fetch_post_data(exchange))

        logger.debug(f"[API] -> {exchange.method} {url[:80]}")

    def on_response_received(self, params: Dict):
        exchange = self.in_flight.get(params.get('requestId'))
        if exchange is None:
            return
        response = params.get('response') or {}
        exchange.status = response.get('status')
        exchange.status_text = response.get('statusText') or ''
        exchange.mime_type = response.get('mimeType') or ''
        exchange.res_headers = self.filter.clean_headers(response.get('headers'))
        exchange.state = ExchangeState.RESPONDED

    async def on_loading_finished(self, params: Dict):
        request_id = params.get('requestId')
        exchange = self.in_flight.get(request_id)
        if exchange is None:
            return

        await self._await_post_data(request_id)
        exchange.response_body = await self._fetch_response_body(request_id)
        exchange.duration = now_ms() - exchange.time
        exchange.state = ExchangeState.FINISHED
        if self.deduplicator is not None:
            self.deduplicator.process(exchange)

        self.stats['finished'] += 1
        self._complete(request_id, exchange)
        logger.debug(f"[API] <- {exchange.status} {exchange.url[:80]} ({exchange.duration}ms)")

    async def on_loading_failed(self, params: Dict):
        request_id = params.get('requestId')
        exchange = self.in_flight.get(request_id)
        if exchange is None:
            return

        await self._await_post_data(request_id)
        exchange.status = 0
        exchange.error = params.get('errorText') or 'loading failed'
        exchange.duration = now_ms() - exchange.time
        exchange.state = ExchangeState.FAILED

        self.stats['failed'] += 1
        self._complete(request_id, exchange)
        logger.debug(f"[API] x FAILED {exchange.url[:80]}: {exchange.error}")

    def _complete(self, request_id: str, exchange: ApiExchange):
        self.in_flight.pop(request_id, None)
        self.pending.append(exchange)
        self.completed.append(exchange)
        if self.on_complete is not None:
            self.on_complete(exchange)

    async def _await_post_data(self, request_id: str):
        task = self._post_data_tasks.pop(request_id, None)
        if task is not None:
            await task

    async def _fetch_post_data(self, exchange: ApiExchange):
        try:
            result = await self.cdp.send('Network.getRequestPostData', {'requestId': exchange.id})
        except Exception as e:
            # The request id may already be gone from the browser
            logger.debug(f"No post data for {exchange.url[:80]}: {e}")
            return
        if result and result.get('postData'):
            exchange.request_body = parse_body(result['postData'])

    async def _fetch_response_body(self, request_id: str) -> Any:
        if self.cdp is None:
            return None
        try:
            result = await self.cdp.send('Network.getResponseBody', {'requestId': request_id})
        except Exception as e:
            logger.debug(f"Response body unavailable for {request_id}: {e}")
            return None

        body = (result or {}).get('body')
        if not body:
            return None
        if result.get('base64Encoded'):
            body = base64.b64decode(body).decode('utf-8', errors='replace')
        return parse_body(body)

    async def settle(self, timeout: float = 5.0) -> bool:
        """Wait (bounded) for in-progress body fetches to finish; True when none remain"""
        if not self._tasks:
            return True
        done, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.debug(f"{len(still_running)} network completions still running after {timeout}s")
        return not still_running

    def partition(self, current_path: str) -> Tuple[List[ApiExchange], List[ApiExchange]]:
        """Split pending exchanges into those issued from ``current_path`` and the rest"""
        relevant = [api for api in self.pending if api.origin_path == current_path]
        remaining = [api for api in self.pending if api.origin_path != current_path]
        return relevant, remaining

    def release(self, exchanges: List[ApiExchange], keep: List[ApiExchange] = None):
        """Drop exchanges handled by a capture from the pending list

        Exchanges that completed after the freeze are not in ``exchanges`` and
        stay pending; anything in ``keep`` is kept even if it was handled.
        """
        handled = {id(api) for api in exchanges}
        kept = {id(api) for api in keep or []}
        self.pending = [api for api in self.pending if id(api) not in handled or id(api) in kept]

    def exchanges_for_screen(self, screen_id: str) -> List[ApiExchange]:
        return [api for api in self.completed if api.screen_id == screen_id]

    def clear_pending(self):
        self.pending = []

    def get_stats(self) -> Dict[str, int]:
        stats = dict(self.stats)
        stats['in_flight'] = len(self.in_flight)
        stats['pending'] = len(self.pending)
        if self.deduplicator is not None:
            stats.update(self.deduplicator.get_stats())
        return stats
