import json
import asyncio
import logging
from pathlib import Path
from typing import List, Optional
from ..actions.action_event import ActionEvent
from ..error_handler import StorageError
from ..network.api_exchange import ApiExchange
from ..storage.artifact_type import ArtifactType

logger = logging.getLogger(__name__)


def api_summary(exchange: ApiExchange) -> dict:
    """Compact line written to the live API stream"""
    return {
        'id': exchange.id,
        'method': exchange.method,
        'url': exchange.url,
        'status': exchange.status,
        'duration': exchange.duration,
        'originPath': exchange.origin_path,
        'deduplicated': exchange.deduplicated,
        'time': exchange.time,
    }


class StreamWriter:
    """Micro-batched JSONL appends of actions and API summaries

    Keeps a crash-safe trail of everything recorded since the last capture.
    Lines are buffered and flushed together once per ``flush_interval``.
    """

    def __init__(self, storage, section_path: Path, flush_interval: float = 0.1):
        self.storage = storage
        self.section_path = Path(section_path)
        self.flush_interval = flush_interval
        self.action_lines: List[str] = []
        self.api_lines: List[str] = []
        self._handle: Optional[asyncio.TimerHandle] = None
        self._flush_task: Optional[asyncio.Task] = None
        self.lines_written = 0

    @property
    def actions_file(self) -> Path:
        return self.section_path / ArtifactType.LIVE_ACTIONS.value

    @property
    def apis_file(self) -> Path:
        return self.section_path / ArtifactType.LIVE_APIS.value

    def append_action(self, action: ActionEvent):
        self.action_lines.append(json.dumps(action.to_dict(), default=str))
        self._schedule()

    def append_api(self, exchange: ApiExchange):
        self.api_lines.append(json.dumps(api_summary(exchange), default=str))
        self._schedule()

    def _schedule(self):
        if self._handle is not None:
            return
        loop = asyncio.get_event_loop()
        self._handle = loop.call_later(self.flush_interval, self._start_flush)

    def _start_flush(self):
        self._handle = None
        self._flush_task = asyncio.ensure_future(self.flush())

    async def flush(self):
        actions, self.action_lines = self.action_lines, []
        apis, self.api_lines = self.api_lines, []
        try:
            await self.storage.append_lines(self.actions_file, actions)
            await self.storage.append_lines(self.apis_file, apis)
            self.lines_written += len(actions) + len(apis)
        except StorageError as e:
            logger.warning(f"Live stream append failed: {e}")

    async def clear(self):
        """Drop buffered lines and remove the live files after a capture"""
        self._cancel_timer()
        self.action_lines = []
        self.api_lines = []
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        await self.storage.remove_file(self.actions_file)
        await self.storage.remove_file(self.apis_file)

    def _cancel_timer(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def close(self):
        self._cancel_timer()
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        await self.flush()
