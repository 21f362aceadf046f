"""
Regression runs: replay a captured section against the live application
"""

import time
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from playwright.async_api import Error as PlaywrightError
from .checkpoint import CheckpointChannel, CheckpointDecision, CheckpointRequest, OverlayCheckpoint
from .report import ScreenResult, ScreenStatus, TestReport, classify_comparison
from .report_renderer import render_html
from ..actions.replayer import ActionReplayer
from ..browser.driver import BrowserDriver
from ..comparison.comparison_engine import ComparisonEngine
from ..config import BrowserConfig, DEVICE_PRESETS, ReplayConfig, resolve_replay_viewport
from ..dom.dom_serializer import DomSerializer
from ..error_handler import BrowserDisconnectedError, ErrorHandler, FlowDataError, StorageError
from ..flow.flow_graph import WalkStep
from ..monitoring.log_manager import LogManager
from ..monitoring.metrics_collector import MetricsCollector
from ..network.api_tracker import ApiTracker, path_of
from ..network.tracker_filter import TrackerFilter
from ..storage.artifact_type import ArtifactType
from ..storage.screen_bundle import ScreenBundle
from ..storage.section_storage import SectionStorage, timestamp_id

logger = logging.getLogger(__name__)


def elapsed_ms(started: float) -> int:
    return int((time.time() - started) * 1000)


class RegressionOrchestrator:
    """Walks a section's flow in a fresh browser and compares every screen

    Each screen is navigated to (first screen) or reached through the
    previous replay, its recorded actions are replayed, then a fresh
    capture is compared with the stored one. A screen that cannot proceed
    waits at an operator checkpoint; one screen failing never stops the run.
    Only a lost browser ends the run early.
    """

    def __init__(self, storage: SectionStorage, replay_config: ReplayConfig = None,
                 browser_config: BrowserConfig = None,
                 driver_factory: Callable[[BrowserConfig], Any] = BrowserDriver,
                 checkpoint_factory: Callable[[Any], CheckpointChannel] = None,
                 comparison_engine: ComparisonEngine = None,
                 log_manager: Optional[LogManager] = None):
        self.storage = storage
        self.config = replay_config or ReplayConfig()
        self.browser_config = browser_config or BrowserConfig()
        self.driver_factory = driver_factory
        self.checkpoint_factory = checkpoint_factory or (
            lambda driver: OverlayCheckpoint(driver, timeout=self.config.checkpoint_timeout)
        )
        self.engine = comparison_engine or ComparisonEngine()
        self.log_manager = log_manager
        self.serializer = DomSerializer()
        self.replayer = ActionReplayer(self.config)

        self.driver = None
        self.tracker: Optional[ApiTracker] = None
        self.checkpoint: Optional[CheckpointChannel] = None
        self.errors = ErrorHandler()
        self.metrics = MetricsCollector()
        self.current_screen_id: Optional[str] = None
        self.original_bodies: Dict[str, Any] = {}

    async def run(self, project: str, section_id: str, device_profile: str = None,
                  strict: bool = False) -> TestReport:
        """Test every screen of a section in flow order and write the report

        Raises:
            FlowDataError: the section has no flow or no captured screens
            AmbiguousFlowError: ``strict`` is set and the flow branches
        """
        started = time.time()
        timestamp = datetime.now().isoformat()
        test_run_id = timestamp_id()
        self.errors = ErrorHandler()
        self.metrics = MetricsCollector()

        section_path = self.storage.section_path(project, section_id)
        graph = await self.storage.load_flow(section_path)
        walk = graph.ordered_walk(strict=strict)
        if not walk.steps:
            raise FlowDataError(f"No captured screens in {project}/{section_id}")

        originals: Dict[str, ScreenBundle] = {}
        for step in walk.steps:
            originals[step.node.id] = await self.storage.load_screen_bundle(section_path, step.node.nested_path)
        self.original_bodies = await self.storage.load_response_index(section_path, graph)

        run_path = await self.storage.ensure_dir(self.storage.test_run_path(project, test_run_id))
        profile_name = device_profile or self.config.device_profile
        viewport = resolve_replay_viewport(profile_name, originals[walk.steps[0].node.id].viewport)
        preset = DEVICE_PRESETS.get(profile_name)
        user_agent = preset.user_agent if preset else None

        logger.info(f"🧪 Regression run {test_run_id}: {project}/{section_id}, "
                    f"{len(walk.steps)} screens, {viewport['width']}x{viewport['height']} ({profile_name})")
        logger.info(f"Flow: {' -> '.join(step.node.id for step in walk.steps)}")

        results = await self._run_steps(walk.steps, originals, run_path, viewport, user_agent)

        report = TestReport(
            test_run_id=test_run_id,
            project=project,
            section_id=section_id,
            timestamp=timestamp,
            duration=elapsed_ms(started),
            device_profile=profile_name,
            viewport=viewport,
            results=results,
            branch_points=walk.branch_points,
            unvisited=walk.unvisited,
            metrics=self.metrics.get_current_snapshot(),
            error_summary=self.errors.get_error_summary(),
        )
        await self.storage.save_report(run_path, report.to_dict(), render_html(report))

        if self.log_manager is not None:
            self.log_manager.log_performance_event(
                'regression_run',
                test_run_id=test_run_id,
                project=project,
                section_id=section_id,
                duration_ms=report.duration,
                **report.summary.to_dict(),
            )
        for line in report.summary_lines():
            logger.info(line)
        return report

    async def _run_steps(self, steps: List[WalkStep], originals: Dict[str, ScreenBundle], run_path: Path,
                         viewport: Dict[str, int], user_agent: Optional[str]) -> List[ScreenResult]:
        self.driver = self.driver_factory(self.browser_config)
        self.current_screen_id = None
        results = []
        try:
            await self.driver.launch(viewport, user_agent)
            self.tracker = ApiTracker(
                tracker_filter=TrackerFilter(ignored_extensions=self.config.ignored_extensions),
                screen_provider=lambda: self.current_screen_id,
            )
            await self.tracker.attach(await self.driver.new_cdp_session())
            self.checkpoint = self.checkpoint_factory(self.driver)
            await self.checkpoint.install()
            self.driver.on_disconnect(lambda: self.checkpoint.resolve(CheckpointDecision.SKIP))

            for index, step in enumerate(steps):
                self.current_screen_id = step.node.id
                logger.info(f"📄 Step {index + 1}/{len(steps)}: {step.node.name}")
                try:
                    result = await self._test_screen(index, step, originals[step.node.id], run_path)
                except BrowserDisconnectedError as e:
                    logger.error(f"Browser disconnected at '{step.node.id}': {e}")
                    self.errors.record(step.node.id, 'replay', e)
                    results.extend(self._abandoned(steps[index:], originals, str(e)))
                    break
                results.append(result)
                self.metrics.record_screen(result.status.value, result.timings, result.actions_replayed,
                                           len(self.tracker.exchanges_for_screen(step.node.id)))
                if self.log_manager is not None:
                    self.log_manager.log_performance_event(
                        'screen_tested', screen_id=step.node.id, status=result.status.value,
                        score=result.score, timings=result.timings,
                    )
        finally:
            if not self.config.keep_browser_open:
                await self.close()
        return results

    def _abandoned(self, steps: List[WalkStep], originals: Dict[str, ScreenBundle],
                   reason: str) -> List[ScreenResult]:
        """Error results for the screen that lost the browser and everything after it"""
        abandoned = []
        for offset, step in enumerate(steps):
            result = ScreenResult(
                step=step.index + 1,
                screen_id=step.node.id,
                screen_name=step.node.name,
                original_url=originals[step.node.id].url,
                status=ScreenStatus.ERROR,
                actions_recorded=len(originals[step.node.id].actions),
            )
            result.errors.append(f"Browser disconnected: {reason}" if offset == 0
                                 else "Not tested: browser disconnected")
            self.metrics.record_screen(result.status.value)
            abandoned.append(result)
        return abandoned

    async def _test_screen(self, index: int, step: WalkStep, original: ScreenBundle,
                           run_path: Path) -> ScreenResult:
        node = step.node
        result = ScreenResult(
            step=index + 1,
            screen_id=node.id,
            screen_name=node.name,
            original_url=original.url,
            actions_recorded=len(original.actions),
        )
        expected_path = path_of(original.url) if original.url else None

        try:
            await self._navigate_and_replay(index, step, original, result)
        except BrowserDisconnectedError:
            raise
        except Exception as e:
            self._ensure_connected(e)
            self.errors.record(node.id, 'navigate', e)
            decision = await self._ask(node.id, node.name, original.url, str(e), 'error')
            if decision == CheckpointDecision.SKIP:
                return self._skipped(result, f"Skipped by user: {e}")
            await self._settle_after_checkpoint()
            live_path = path_of(self.driver.current_url)
            if expected_path and live_path != expected_path:
                return self._skipped(result, f"Navigated past this screen (now on {live_path})")

        live_path = path_of(self.driver.current_url)
        if result.actions_replayed == 0 and expected_path and live_path != expected_path:
            self.errors.record_mismatch(node.id, expected_path, live_path)
            message = (f"URL mismatch: expected \"{expected_path}\" but on \"{live_path}\". "
                       f"Navigate to the right page (e.g. log in), then continue.")
            decision = await self._ask(node.id, node.name, original.url, message, 'url_mismatch')
            if decision == CheckpointDecision.SKIP:
                return self._skipped(result, "Skipped by user: URL mismatch (possible login redirect)")
            await self._settle_after_checkpoint()

        screen_dir = self.storage.screen_dir(run_path, node.id)
        try:
            await self._capture_and_compare(node.id, node.name, original, result, run_path)
        except BrowserDisconnectedError:
            raise
        except Exception as e:
            self._ensure_connected(e)
            self.errors.record(node.id, 'capture', e)
            await self._save_error_page(screen_dir)
            message = (f"Error at screen \"{node.name}\": {e}. Navigate to the right page and continue "
                       f"to retry the capture, or skip.")
            decision = await self._ask(node.id, node.name, original.url, message, 'error')
            if decision == CheckpointDecision.SKIP:
                return self._skipped(result, f"Skipped by user: {e}")

            await self._settle_after_checkpoint()
            try:
                await self._capture_and_compare(node.id, node.name, original, result, run_path)
            except BrowserDisconnectedError:
                raise
            except Exception as retry_error:
                self._ensure_connected(retry_error)
                self.errors.record(node.id, 'capture', retry_error, attempt=2)
                result.status = ScreenStatus.ERROR
                result.errors.append(f"Retry failed: {retry_error}")
                logger.error(f"💥 {node.name}: retry also failed: {retry_error}")

        return result

    async def _navigate_and_replay(self, index: int, step: WalkStep, original: ScreenBundle,
                                   result: ScreenResult):
        started = time.time()
        if index == 0 and original.url:
            logger.info(f"🌐 Navigating to {original.url}")
            await self.driver.navigate(original.url, timeout=self.config.navigation_timeout,
                                       wait_until='networkidle')
        elif index > 0:
            await self.driver.wait_for_network_idle(self.config.settle_timeout)
            await asyncio.sleep(self.config.settle_delay)
        result.timings['navigate'] = elapsed_ms(started)

        if original.actions and step.edge.action_count != 0:
            started = time.time()
            replay = await self.replayer.replay_actions(self.driver, original.actions)
            result.actions_replayed = replay.actions_replayed
            result.errors.extend(f"Action skipped: {skipped}" for skipped in replay.skipped)
            result.timings['replay'] = elapsed_ms(started)
            await self.driver.wait_for_network_idle(self.config.action_settle_timeout)
            await asyncio.sleep(self.config.settle_delay)

    async def _capture_and_compare(self, screen_id: str, screen_name: str, original: ScreenBundle,
                                   result: ScreenResult, run_path: Path):
        started = time.time()
        await self.tracker.settle(self.config.settle_timeout)
        snapshot = await self.serializer.snapshot(self.driver)
        result.live_url = snapshot.url
        live = ScreenBundle(
            nested_path=screen_id,
            html=snapshot.html,
            dom=snapshot.dom,
            dom_meta={'url': snapshot.url, 'title': snapshot.title, 'viewport': snapshot.viewport},
            meta={
                'id': screen_id,
                'name': screen_name,
                'url': snapshot.url,
                'path': path_of(snapshot.url),
                'title': snapshot.title,
                'scroll': snapshot.scroll,
                'viewport': snapshot.viewport,
                'time': datetime.now().isoformat(),
            },
            apis=self.tracker.exchanges_for_screen(screen_id),
        )
        await self.storage.save_screen_bundle(run_path, live)
        result.timings['capture'] = elapsed_ms(started)

        started = time.time()
        comparison = self.engine.compare_bundles(original, live, original_bodies=self.original_bodies)
        result.timings['compare'] = elapsed_ms(started)
        result.comparison = comparison
        result.status = classify_comparison(comparison)

        if result.status == ScreenStatus.PASSED:
            logger.info(f"✅ {screen_name}: passed ({comparison.overall_score}%)")
        elif result.status == ScreenStatus.FAILED:
            logger.warning(f"❌ {screen_name}: failed - {comparison.ui.summary} | {comparison.api.summary}")
        else:
            logger.warning(f"⚠️ {screen_name}: warning - {comparison.ui.summary} | {comparison.api.summary}")

    async def _ask(self, screen_id: str, screen_name: str, target_url: str, error: str,
                   reason: str) -> CheckpointDecision:
        self.metrics.record_checkpoint()
        decision = await self.checkpoint.request(CheckpointRequest(
            screen_id=screen_id,
            screen_name=screen_name,
            target_url=target_url,
            error=error,
            reason=reason,
        ))
        if not self.driver.is_connected():
            raise BrowserDisconnectedError("Browser closed while waiting for the operator")
        return decision

    def _ensure_connected(self, error: Exception):
        if not self.driver.is_connected():
            raise BrowserDisconnectedError(str(error)) from error

    async def _settle_after_checkpoint(self):
        await self.driver.wait_for_network_idle(self.config.action_settle_timeout)
        await asyncio.sleep(self.config.settle_delay)

    @staticmethod
    def _skipped(result: ScreenResult, reason: str) -> ScreenResult:
        result.status = ScreenStatus.SKIPPED
        result.errors.append(reason)
        logger.info(f"⏭️ {result.screen_name}: {reason}")
        return result

    async def _save_error_page(self, screen_dir: Path):
        try:
            html = await self.driver.content()
            await self.storage.write_text(Path(screen_dir) / ArtifactType.ERROR_PAGE.value, html)
        except (PlaywrightError, BrowserDisconnectedError, StorageError) as e:
            logger.warning(f"Could not save the error page: {e}")

    async def close(self):
        if self.driver is not None:
            await self.driver.close()
        self.driver = None

    async def get_history(self, project: str, section_id: str = None) -> List[Dict[str, Any]]:
        return await self.storage.list_test_runs(project, section_id)

    async def delete_test_run(self, project: str, test_run_id: str) -> bool:
        return await self.storage.delete_test_run(project, test_run_id)
