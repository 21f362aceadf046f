import pytest
from screenflow.actions import ActionEvent, ActionRecorder, ActionReplayer, ActionType
from screenflow.actions.recorder import RECORD_BINDING
from screenflow.actions.replayer import optimize_actions
from screenflow.config import ReplayConfig
from screenflow.error_handler import BrowserDisconnectedError
from .fakes import FakeDriver


def typing(selector, text, start=0):
    """One input event per keystroke, as the page reports them"""
    return [{'type': 'input', 'selector': selector, 'value': text[:i + 1], 'time': start + i}
            for i in range(len(text))]


class TestActionEvent:

    def test_wire_format(self):
        event = ActionEvent.from_dict({'type': 'navigation', 'from': '/a', 'to': '/b',
                                       'trigger': 'pushState', 'time': 5})

        assert event.type == ActionType.NAVIGATION
        assert event.to_dict() == {'type': 'navigation', 'from': '/a', 'to': '/b',
                                   'trigger': 'pushState', 'time': 5}

    def test_unknown_type_kept_as_other(self):
        event = ActionEvent.from_dict({'type': 'drag', 'selector': '#card'})

        assert event.type == ActionType.OTHER
        assert not event.replayable
        assert event.to_dict()['type'] == 'drag'


class TestActionRecorder:

    def test_consecutive_inputs_coalesce(self):
        seen = []
        recorder = ActionRecorder(on_action=seen.append)

        recorder.record_batch(typing('#email', 'abcde'))
        recorder.record_batch([{'type': 'click', 'selector': '#submit', 'text': 'Sign in', 'time': 10}])

        actions = recorder.snapshot()
        assert [action.type for action in actions] == [ActionType.INPUT, ActionType.CLICK]
        assert actions[0].value == 'abcde'
        assert actions[0].time == 4
        assert recorder.stats == {'actions_recorded': 2, 'inputs_coalesced': 4}
        assert len(seen) == 2

    def test_inputs_on_different_fields_stay_separate(self):
        recorder = ActionRecorder()

        recorder.record_batch(typing('#email', 'ab') + typing('#password', 'xy') + typing('#email', 'c'))

        assert [(a.selector, a.value) for a in recorder.snapshot()] == [
            ('#email', 'ab'), ('#password', 'xy'), ('#email', 'c'),
        ]

    def test_release_keeps_actions_recorded_after_snapshot(self):
        recorder = ActionRecorder()
        recorder.record_batch([{'type': 'click', 'selector': '#a'}])
        frozen = recorder.snapshot()
        recorder.record_batch([{'type': 'click', 'selector': '#b'}])

        recorder.release(frozen)

        assert [action.selector for action in recorder.pending] == ['#b']

    def test_input_after_snapshot_starts_new_entry(self):
        recorder = ActionRecorder()
        recorder.record_batch(typing('#q', 'ab'))
        frozen = recorder.snapshot()
        recorder.record_batch([{'type': 'input', 'selector': '#q', 'value': 'abc', 'time': 9}])

        recorder.release(frozen)

        assert [(a.selector, a.value) for a in frozen] == [('#q', 'ab')]
        assert [(a.selector, a.value, a.time) for a in recorder.pending] == [('#q', 'abc', 9)]

    def test_disabled_recorder_ignores_batches(self):
        recorder = ActionRecorder()
        recorder.enabled = False

        recorder._on_batch(None, [{'type': 'click', 'selector': '#a'}])

        assert recorder.pending == []

    def test_last_click_text(self):
        actions = [ActionEvent(ActionType.CLICK, text='Menu'), ActionEvent(ActionType.CLICK, text='Orders'),
                   ActionEvent(ActionType.INPUT, selector='#q', value='x')]

        assert ActionRecorder.last_click_text(actions) == 'Orders'
        assert ActionRecorder.last_click_text([]) == ''

    @pytest.mark.asyncio
    async def test_install_exposes_binding_and_script(self):
        driver = FakeDriver()
        recorder = ActionRecorder(batch_interval=0.25)

        await recorder.install(driver)

        assert RECORD_BINDING in driver.bindings
        assert 'setTimeout(flush, 250)' in driver.init_scripts[0]


class TestOptimizeActions:

    def test_runs_collapse_and_context_events_drop(self):
        actions = [ActionEvent.from_dict(item) for item in [
            {'type': 'focus', 'selector': '#q'},
            {'type': 'input', 'selector': '#q', 'value': 'sh'},
            {'type': 'change', 'selector': '#q', 'value': 'shoes'},
            {'type': 'scroll', 'position': {'x': 0, 'y': 100}},
            {'type': 'scroll', 'position': {'x': 0, 'y': 400}},
            {'type': 'keydown', 'selector': '#q', 'key': 'Enter'},
        ]]

        optimized = optimize_actions(actions)

        assert [action.type_name for action in optimized] == ['change', 'scroll', 'keydown']
        assert optimized[0].value == 'shoes'
        assert optimized[1].position == {'x': 0, 'y': 400}


class TestActionReplayer:

    def setup_method(self):
        self.driver = FakeDriver()
        self.driver.connected = True
        self.replayer = ActionReplayer(ReplayConfig(scroll_delay=0))

    @pytest.mark.asyncio
    async def test_typing_then_click(self):
        actions = [ActionEvent.from_dict(item) for item in typing('#email', 'abcde')]
        actions.append(ActionEvent(ActionType.CLICK, selector='#submit', text='Sign in'))

        result = await self.replayer.replay_actions(self.driver, actions)

        performed = [call for call in self.driver.calls if call[0] in ('fill', 'click')]
        assert performed == [('fill', '#email', 'abcde'), ('click', '#submit', 1)]
        assert (result.actions_recorded, result.actions_planned, result.actions_replayed) == (6, 2, 2)
        assert result.skipped == []

    @pytest.mark.asyncio
    async def test_missing_selector_is_skipped(self):
        self.driver.missing_selectors = {'#gone'}
        actions = [
            ActionEvent(ActionType.CLICK, selector='#gone'),
            ActionEvent(ActionType.DBLCLICK, selector='#row'),
            ActionEvent(ActionType.SELECT, selector='#size', value='m'),
        ]

        result = await self.replayer.replay_actions(self.driver, actions)

        assert result.actions_replayed == 2
        assert result.skipped == ['click #gone']
        assert ('click', '#row', 2) in self.driver.calls
        assert ('select', '#size', 'm') in self.driver.calls

    @pytest.mark.asyncio
    async def test_navigation_and_empty_actions_are_not_counted(self):
        actions = [
            ActionEvent(ActionType.NAVIGATION, from_url='/a', to_url='/b'),
            ActionEvent(ActionType.CLICK),
            ActionEvent(ActionType.SCROLL, position={'x': 0, 'y': 300}),
            ActionEvent(ActionType.KEYDOWN, key='Enter'),
        ]

        result = await self.replayer.replay_actions(self.driver, actions)

        assert result.actions_replayed == 2
        assert ('evaluate', {'x': 0, 'y': 300}) in self.driver.calls
        assert ('press', 'Enter') in self.driver.calls

    @pytest.mark.asyncio
    async def test_lost_browser_stops_replay(self):
        self.driver.missing_selectors = {'#submit'}
        self.driver.connected = False
        actions = [ActionEvent(ActionType.CLICK, selector='#submit'),
                   ActionEvent(ActionType.CLICK, selector='#next')]

        with pytest.raises(BrowserDisconnectedError):
            await self.replayer.replay_actions(self.driver, actions)

        assert ('click', '#next', 1) not in self.driver.calls
