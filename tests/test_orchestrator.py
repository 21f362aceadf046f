import json
import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from screenflow.actions import ActionEvent
from screenflow.config import ReplayConfig
from screenflow.dom import DomSerializer
from screenflow.error_handler import AmbiguousFlowError, FlowDataError
from screenflow.flow import FlowGraph, ScreenNode
from screenflow.regression import CheckpointChannel, CheckpointDecision, RegressionOrchestrator, ScreenStatus
from screenflow.storage import ScreenBundle
from .fakes import FakeDriver, page_tree, snapshot_result

ORIGIN = 'https://app.example.com'
BLUE = '#3b82f6'
RED = '#ef4444'

LOGIN = {'id': 'login', 'name': 'Login', 'path': '/login'}
HOME = {'id': 'home', 'name': 'Home', 'path': '/home', 'actions': [
    {'type': 'input', 'selector': '#email', 'value': 'ada@example.com', 'time': 1},
    {'type': 'click', 'selector': '#submit', 'text': 'Sign in', 'time': 2},
]}
PROFILE = {'id': 'profile', 'name': 'Profile', 'path': '/profile', 'actions': [
    {'type': 'click', 'selector': '#avatar', 'time': 3},
]}


async def capture_section(storage, screens, viewport=None):
    """Store a linear section the way a capture session would"""
    viewport = viewport or {'w': 1280, 'h': 720}
    _, section_path = await storage.create_section('shop')
    graph = FlowGraph(start_path='/login', domain='app.example.com')
    parent = 'start'
    for screen in screens:
        node = ScreenNode(screen['id'], screen['name'], url_path=screen['path'])
        actions = [ActionEvent.from_dict(item) for item in screen.get('actions', [])]
        graph.add_node(node, screen.get('parent', parent), action_count=len(actions))
        parent = node.id
        url = f"{ORIGIN}{screen['path']}"
        await storage.save_screen_bundle(section_path, ScreenBundle(
            nested_path=node.nested_path,
            html='<html><body><h1>Welcome</h1></body></html>',
            dom=DomSerializer().normalize(page_tree(button_color=BLUE)),
            dom_meta={'url': url, 'viewport': viewport},
            meta={'id': node.id, 'name': node.name, 'url': url, 'viewport': viewport},
            actions=actions,
        ))
    await storage.save_flow(section_path, graph)
    return section_path.name


def live(path, color=BLUE):
    return snapshot_result(f"{ORIGIN}{path}", tree=page_tree(button_color=color))


class ScriptedCheckpoint(CheckpointChannel):
    """Answers checkpoints from a list, optionally acting as the operator first"""

    def __init__(self, decisions, on_present=None):
        super().__init__(timeout=1)
        self.decisions = list(decisions)
        self.on_present = on_present
        self.requests = []

    async def _present(self, request):
        self.requests.append(request)
        if self.on_present is not None:
            self.on_present(request)
        self.resolve(self.decisions.pop(0))


def orchestrator_for(storage, driver, checkpoint=None):
    return RegressionOrchestrator(
        storage,
        replay_config=ReplayConfig(settle_delay=0, scroll_delay=0, settle_timeout=1, action_settle_timeout=1),
        driver_factory=lambda config: driver,
        checkpoint_factory=lambda driver: checkpoint or ScriptedCheckpoint([]),
    )


def driver_for(*snapshots, **kwargs):
    kwargs.setdefault('click_targets', {'#submit': f"{ORIGIN}/home", '#avatar': f"{ORIGIN}/profile"})
    return FakeDriver(snapshots=list(snapshots), **kwargs)


class TestRegressionRun:

    @pytest.mark.asyncio
    async def test_unchanged_section_passes(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME])
        driver = driver_for(live('/login'), live('/home'))

        report = await orchestrator_for(storage, driver).run('shop', section_id)

        assert report.overall_status == 'PASSED'
        assert [r.status for r in report.results] == [ScreenStatus.PASSED, ScreenStatus.PASSED]
        assert report.results[1].actions_replayed == 2
        assert report.viewport == {'width': 1280, 'height': 720}
        assert driver.calls[0] == ('launch', {'width': 1280, 'height': 720}, None)
        assert ('navigate', f"{ORIGIN}/login") in driver.calls
        assert ('fill', '#email', 'ada@example.com') in driver.calls
        assert driver.closed

        run_path = storage.test_run_path('shop', report.test_run_id)
        saved = json.loads((run_path / 'report.json').read_text())
        assert saved['summary']['passed'] == 2
        assert saved['sectionId'] == section_id
        assert (run_path / 'report.html').read_text().count('PASSED') >= 1
        assert (run_path / 'login' / 'dom.json').exists()

    @pytest.mark.asyncio
    async def test_color_change_fails_screen(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME])
        driver = driver_for(live('/login', color=RED), live('/home'))

        report = await orchestrator_for(storage, driver).run('shop', section_id)

        login = report.results[0]
        assert login.status == ScreenStatus.FAILED
        modified = login.comparison.ui.modified
        assert [(c.property_name, c.old, c.new) for c in modified] == [('color', BLUE, RED)]
        assert report.results[1].status == ScreenStatus.PASSED
        assert report.overall_status == 'FAILED'
        assert report.summary.average_score < 100
        html = (storage.test_run_path('shop', report.test_run_id) / 'report.html').read_text()
        assert '#3b82f6 &rarr; #ef4444' in html

    @pytest.mark.asyncio
    async def test_preset_profile_overrides_captured_viewport(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        driver = driver_for(live('/login'))

        report = await orchestrator_for(storage, driver).run('shop', section_id, device_profile='tablet')

        assert report.viewport == {'width': 768, 'height': 1024}
        assert 'iPad' in driver.calls[0][2]

    @pytest.mark.asyncio
    async def test_login_redirect_skipped_at_checkpoint(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME])
        driver = driver_for(live('/home'), navigate_to=f"{ORIGIN}/sso")
        checkpoint = ScriptedCheckpoint([CheckpointDecision.SKIP])

        report = await orchestrator_for(storage, driver, checkpoint).run('shop', section_id)

        login, home = report.results
        assert login.status == ScreenStatus.SKIPPED
        assert login.errors == ["Skipped by user: URL mismatch (possible login redirect)"]
        assert checkpoint.requests[0].reason == 'url_mismatch'
        assert home.status == ScreenStatus.PASSED
        assert report.overall_status == 'PASSED'
        assert report.metrics['run_metrics']['checkpoints'] == 1
        assert report.error_summary['error_types'] == {'url_mismatch': 1}

    @pytest.mark.asyncio
    async def test_operator_fixes_page_and_continues(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        driver = driver_for(live('/login'), navigate_to=f"{ORIGIN}/sso")

        def log_in(request):
            driver.url = f"{ORIGIN}/login"

        checkpoint = ScriptedCheckpoint([CheckpointDecision.CONTINUE], on_present=log_in)
        report = await orchestrator_for(storage, driver, checkpoint).run('shop', section_id)

        assert report.results[0].status == ScreenStatus.PASSED
        assert report.results[0].live_url == f"{ORIGIN}/login"

    @pytest.mark.asyncio
    async def test_navigation_error_skipped(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        driver = driver_for(live('/login'), navigate_error=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        checkpoint = ScriptedCheckpoint([CheckpointDecision.SKIP])

        report = await orchestrator_for(storage, driver, checkpoint).run('shop', section_id)

        assert report.results[0].status == ScreenStatus.SKIPPED
        assert report.results[0].errors == ["Skipped by user: Timeout 30000ms exceeded"]
        assert checkpoint.requests[0].title == 'Navigation error'

    @pytest.mark.asyncio
    async def test_capture_error_retried_after_checkpoint(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        driver = driver_for(PlaywrightError("Execution context was destroyed"), live('/login'))
        checkpoint = ScriptedCheckpoint([CheckpointDecision.CONTINUE])

        report = await orchestrator_for(storage, driver, checkpoint).run('shop', section_id)

        assert report.results[0].status == ScreenStatus.PASSED
        run_path = storage.test_run_path('shop', report.test_run_id)
        assert (run_path / 'login' / 'error_page.html').read_text() == driver.html
        assert report.error_summary['total_errors'] == 1

    @pytest.mark.asyncio
    async def test_failed_retry_is_an_error(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        driver = driver_for(PlaywrightError("first"), PlaywrightError("second"))
        checkpoint = ScriptedCheckpoint([CheckpointDecision.CONTINUE])

        report = await orchestrator_for(storage, driver, checkpoint).run('shop', section_id)

        assert report.results[0].status == ScreenStatus.ERROR
        assert report.results[0].errors == ["Retry failed: second"]
        assert report.overall_status == 'FAILED'

    @pytest.mark.asyncio
    async def test_missing_selector_does_not_stop_run(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME])
        driver = driver_for(live('/login'), live('/home'), missing_selectors={'#email'})

        report = await orchestrator_for(storage, driver).run('shop', section_id)

        home = report.results[1]
        assert home.actions_replayed == 1
        assert home.errors == ["Action skipped: input #email"]
        assert home.status == ScreenStatus.PASSED

    @pytest.mark.asyncio
    async def test_disconnect_ends_run_with_report(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME, PROFILE])
        driver = driver_for(live('/login'), live('/home'), disconnect_on={'#submit'})

        report = await orchestrator_for(storage, driver).run('shop', section_id)

        assert [r.status for r in report.results] == [ScreenStatus.PASSED, ScreenStatus.ERROR, ScreenStatus.ERROR]
        assert report.results[1].errors[0].startswith("Browser disconnected:")
        assert report.results[2].errors == ["Not tested: browser disconnected"]
        assert report.overall_status == 'FAILED'
        assert (storage.test_run_path('shop', report.test_run_id) / 'report.json').exists()

    @pytest.mark.asyncio
    async def test_branches_reported_or_refused(self, storage):
        section_id = await capture_section(storage, [LOGIN, HOME, dict(PROFILE, parent='login')])

        with pytest.raises(AmbiguousFlowError):
            await orchestrator_for(storage, driver_for(live('/login'))).run('shop', section_id, strict=True)

        driver = driver_for(live('/login'), live('/home'))
        report = await orchestrator_for(storage, driver).run('shop', section_id)
        assert report.branch_points == ['login']
        assert report.unvisited == ['profile']

    @pytest.mark.asyncio
    async def test_section_without_screens(self, storage):
        section_id = await capture_section(storage, [])

        with pytest.raises(FlowDataError):
            await orchestrator_for(storage, driver_for(live('/login'))).run('shop', section_id)

    @pytest.mark.asyncio
    async def test_history_and_delete(self, storage):
        section_id = await capture_section(storage, [LOGIN])
        orchestrator = orchestrator_for(storage, driver_for(live('/login')))
        report = await orchestrator.run('shop', section_id)

        history = await orchestrator.get_history('shop', section_id)

        assert [run['testRunId'] for run in history] == [report.test_run_id]
        assert await orchestrator.delete_test_run('shop', report.test_run_id)
        assert await orchestrator.get_history('shop') == []
