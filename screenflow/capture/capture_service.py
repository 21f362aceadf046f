"""
Interactive capture sessions: one browser, one operator, one section at a time
"""

import time
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse
from playwright.async_api import Error as PlaywrightError
from .api_assigner import RetroactiveAssigner
from .session import FrozenState, SessionContext, SessionState
from .stream_writer import StreamWriter
from ..actions.recorder import ActionRecorder
from ..browser.driver import BrowserDriver
from ..config import BrowserConfig, CaptureConfig, resolve_device_profile
from ..dom.dom_serializer import DomSerializer, PAGE_META_JS, inject_base_href
from ..error_handler import ScreenflowError, SessionError, StorageError
from ..flow.flow_graph import FlowGraph
from ..flow.screen_node import ScreenNode, ScreenType
from ..network.api_tracker import ApiTracker, path_of
from ..network.response_deduplicator import ResponseDeduplicator
from ..network.tracker_filter import TrackerFilter
from ..storage.screen_bundle import ScreenBundle
from ..storage.section_storage import SectionStorage

logger = logging.getLogger(__name__)


class CaptureService:
    """Owns the capture session state and is its only writer

    Freeze and capture requests, whether they come from the command line or
    from the page bindings, are serialized through one lock.
    """

    def __init__(self, storage: SectionStorage, browser_config: BrowserConfig = None,
                 capture_config: CaptureConfig = None,
                 driver_factory: Callable[[BrowserConfig], Any] = BrowserDriver,
                 serializer: DomSerializer = None):
        self.storage = storage
        self.browser_config = browser_config or BrowserConfig()
        self.config = capture_config or CaptureConfig()
        self.driver_factory = driver_factory
        self.serializer = serializer or DomSerializer()

        self.state = SessionState.IDLE
        self.session: Optional[SessionContext] = None
        self.driver = None
        self.tracker: Optional[ApiTracker] = None
        self.recorder: Optional[ActionRecorder] = None
        self.stream: Optional[StreamWriter] = None
        self.assigner = RetroactiveAssigner(storage)
        self._lock = asyncio.Lock()

    async def start_session(self, project: str, start_url: str, device_profile: str = 'desktop',
                            width: int = None, height: int = None) -> SessionContext:
        """Open a browser on ``start_url`` and begin recording into a new section"""
        if self.state != SessionState.IDLE:
            logger.info("Stopping the active session before starting a new one")
            await self.stop_session()

        profile = resolve_device_profile(device_profile, width, height)
        section_id, section_path = await self.storage.create_section(project)
        graph = FlowGraph(start_path=path_of(start_url), domain=urlparse(start_url).netloc,
                          device_profile=profile.name)
        await self.storage.save_flow(section_path, graph)

        self.session = SessionContext(
            project=project,
            section_id=section_id,
            section_path=section_path,
            start_url=start_url,
            device_profile=profile.name,
            flow_graph=graph,
        )
        self.assigner.reset()

        self.driver = self.driver_factory(self.browser_config)
        try:
            await self.driver.launch(profile.viewport, profile.user_agent)
            self.driver.on_disconnect(self._on_browser_disconnected)

            self.stream = StreamWriter(self.storage, section_path, self.config.stream_flush_interval)
            self.tracker = ApiTracker(
                tracker_filter=TrackerFilter(),
                deduplicator=ResponseDeduplicator(),
                on_complete=self.stream.append_api,
            )
            await self.tracker.attach(await self.driver.new_cdp_session())

            if self.config.inject_auth:
                await self.driver.apply_auth(await self.storage.load_auth(project))

            self.recorder = ActionRecorder(self.config.action_batch_interval, on_action=self.stream.append_action)
            await self.recorder.install(self.driver)
            await self._expose_bindings()
        except Exception as e:
            logger.error(f"Could not start capture session {project}/{section_id}: {e}")
            await self._teardown()
            raise

        self.state = SessionState.RUNNING
        logger.info(f"Capture session started: {project}/{section_id} at {start_url} ({profile.name})")

        try:
            await self.driver.navigate(start_url, timeout=self.config.navigation_timeout,
                                       wait_until='domcontentloaded')
        except PlaywrightError as e:
            logger.warning(f"Initial navigation to {start_url} did not complete: {e}")
        return self.session

    async def _expose_bindings(self):
        await self.driver.expose_binding('__getCaptureContext', self._binding_context)
        await self.driver.expose_binding('__freezeState', self._binding_freeze)
        await self.driver.expose_binding('__executeCapture', self._binding_capture)
        await self.driver.expose_binding('__cancelCapture', self._binding_cancel)

    async def _binding_context(self, source):
        return self.capture_context()

    async def _binding_freeze(self, source):
        try:
            await self.freeze()
            return True
        except ScreenflowError as e:
            logger.error(f"Freeze failed: {e}")
            return False

    async def _binding_capture(self, source, options=None):
        options = options or {}
        try:
            return await self.capture_screen(options.get('name'), options.get('type', 'page'),
                                             options.get('parentId'))
        except ScreenflowError as e:
            logger.error(f"Capture failed: {e}")
            return {'error': str(e)}

    async def _binding_cancel(self, source):
        self.cancel_capture()

    def _on_browser_disconnected(self):
        if self.state == SessionState.RUNNING:
            logger.warning("Browser closed by the user, stopping the capture session")
            asyncio.ensure_future(self.stop_session())

    def _require_session(self) -> SessionContext:
        if self.state != SessionState.RUNNING or self.session is None:
            raise SessionError("No active capture session")
        return self.session

    def capture_context(self) -> Dict[str, Any]:
        """What the capture UI shows before a screen is named"""
        if self.session is None:
            return {'nodes': []}
        return {
            'nodes': [node.to_dict() for node in self.session.flow_graph.nodes.values()],
            'parentId': self.session.last_capture_id,
            'actions': len(self.recorder.pending) if self.recorder else 0,
            'apis': len(self.tracker.pending) if self.tracker else 0,
        }

    async def freeze(self) -> FrozenState:
        """Hold the current page metadata, pending actions and page-relevant APIs"""
        async with self._lock:
            return await self._freeze(self._require_session())

    async def _freeze(self, session: SessionContext) -> FrozenState:
        await self.tracker.settle(self.config.settle_timeout)
        meta = await self.driver.evaluate(PAGE_META_JS) or {}
        url_path = path_of(meta.get('url') or self.driver.current_url)
        relevant, remaining = self.tracker.partition(url_path)

        session.frozen = FrozenState(
            meta=meta,
            actions=self.recorder.snapshot(),
            apis=relevant,
            remaining_apis=remaining,
            url_path=url_path,
        )
        logger.info(f"Frozen {url_path}: {len(session.frozen.actions)} actions, "
                    f"{len(relevant)} APIs ({len(remaining)} from other pages)")
        return session.frozen

    async def capture_screen(self, name: str = None, screen_type: str = 'page',
                             parent_id: str = None) -> Dict[str, Any]:
        """Persist the current screen as a child of ``parent_id`` (default: last capture)

        Returns:
            Summary of the stored screen
        """
        async with self._lock:
            session = self._require_session()
            frozen = session.frozen or await self._freeze(session)
            snapshot = await self.serializer.snapshot(self.driver)

            graph = session.flow_graph
            parent_id = parent_id or session.last_capture_id
            screen_id = graph.allocate_id(name)
            node = ScreenNode(id=screen_id, name=name or screen_id, type=ScreenType.parse(screen_type),
                              url_path=frozen.url_path)
            graph.add_node(node, parent_id, ActionRecorder.last_click_text(frozen.actions),
                           len(frozen.actions), len(frozen.apis))
            for api in frozen.apis:
                api.screen_id = screen_id

            url = frozen.meta.get('url') or snapshot.url
            bundle = self._build_bundle(node, parent_id, url, frozen, snapshot)
            try:
                await self.storage.save_screen_bundle(session.section_path, bundle)
            except StorageError:
                graph.remove_node(screen_id)
                raise

            self.assigner.register(node.url_path, screen_id)
            unmatched = await self.assigner.assign(session.section_path, frozen.remaining_apis, graph)

            try:
                await self.storage.save_flow(session.section_path, graph)
            except StorageError as e:
                logger.error(f"Could not persist the flow graph, aborting session: {e}")
                await self._teardown()
                raise

            self.tracker.release(frozen.apis + frozen.remaining_apis, keep=unmatched)
            self.recorder.release(frozen.actions)
            await self.stream.clear()

            session.captures.append({'id': screen_id, 'name': node.name, 'nestedPath': node.nested_path,
                                     'time': int(time.time() * 1000)})
            session.last_capture_id = screen_id
            session.last_capture_url = url
            session.frozen = None

            logger.info(f"Captured '{screen_id}' at {node.nested_path} ({len(frozen.actions)} actions, "
                        f"{len(frozen.apis)} APIs, {len(frozen.remaining_apis) - len(unmatched)} reassigned)")
            return {
                'id': screen_id,
                'name': node.name,
                'type': node.type.value,
                'parentId': parent_id,
                'nestedPath': node.nested_path,
                'path': node.url_path,
                'actions': len(frozen.actions),
                'apis': len(frozen.apis),
                'reassigned': len(frozen.remaining_apis) - len(unmatched),
            }

    def _build_bundle(self, node: ScreenNode, parent_id: str, url: str, frozen: FrozenState,
                      snapshot) -> ScreenBundle:
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}" if parsed.scheme and parsed.netloc else ''
        return ScreenBundle(
            nested_path=node.nested_path,
            html=inject_base_href(snapshot.html or '', origin),
            dom=snapshot.dom,
            dom_meta={
                'url': url,
                'title': frozen.meta.get('title', snapshot.title),
                'viewport': frozen.meta.get('viewport') or snapshot.viewport,
            },
            meta={
                'id': node.id,
                'name': node.name,
                'type': node.type.value,
                'path': node.url_path,
                'url': url,
                'title': frozen.meta.get('title', snapshot.title),
                'scroll': frozen.meta.get('scroll') or snapshot.scroll,
                'viewport': frozen.meta.get('viewport') or snapshot.viewport,
                'parentId': parent_id,
                'nestedPath': node.nested_path,
                'time': datetime.now().isoformat(),
            },
            actions=frozen.actions,
            apis=frozen.apis,
        )

    def cancel_capture(self):
        """Forget the frozen state and everything recorded since the last capture"""
        if self.session is not None:
            self.session.frozen = None
        if self.recorder is not None:
            self.recorder.clear()
        if self.tracker is not None:
            self.tracker.clear_pending()
        logger.info("Capture cancelled, pending actions and APIs cleared")

    async def stop_session(self) -> Optional[Dict[str, Any]]:
        """Write session.json and close the browser"""
        if self.session is None:
            return None
        self.state = SessionState.CLOSING
        session = self.session
        session_data = session.to_session_dict()
        try:
            if self.stream is not None:
                await self.stream.close()
            await self.storage.write_session(session.section_path, session_data)
        finally:
            await self._teardown()
        logger.info(f"Capture session {session.project}/{session.section_id} stopped "
                    f"({len(session.captures)} screens)")
        return session_data

    async def _teardown(self):
        if self.driver is not None:
            await self.driver.close()
        self.driver = None
        self.tracker = None
        self.recorder = None
        self.stream = None
        self.session = None
        self.state = SessionState.IDLE

    def status(self) -> Dict[str, Any]:
        status = {'state': self.state.value}
        if self.session is None:
            return status
        status.update({
            'project': self.session.project,
            'sectionId': self.session.section_id,
            'startUrl': self.session.start_url,
            'deviceProfile': self.session.device_profile,
            'screens': len(self.session.captures),
            'captures': [capture['id'] for capture in self.session.captures],
            'lastCaptureId': self.session.last_capture_id,
            'frozen': self.session.frozen is not None,
            'pendingActions': len(self.recorder.pending) if self.recorder else 0,
            'pendingApis': len(self.tracker.pending) if self.tracker else 0,
        })
        if self.tracker is not None:
            status['network'] = self.tracker.get_stats()
        return status
