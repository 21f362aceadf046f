import asyncio
import pytest
from playwright.async_api import Error as PlaywrightError
from screenflow.regression import CheckpointChannel, CheckpointDecision, CheckpointRequest, OverlayCheckpoint
from screenflow.regression.checkpoint import CONTINUE_BINDING
from .fakes import FakeDriver, wait_until


def mismatch_request():
    return CheckpointRequest(screen_id='login', screen_name='Login', target_url='https://app.example.com/login',
                             error='URL mismatch', reason='url_mismatch')


class BrokenDriver(FakeDriver):
    async def evaluate(self, expression, arg=None):
        raise PlaywrightError("Execution context was destroyed")


class TestCheckpointChannel:

    @pytest.mark.asyncio
    async def test_resolve_unblocks_request(self):
        channel = CheckpointChannel()
        pending = asyncio.ensure_future(channel.request(mismatch_request()))
        assert await wait_until(lambda: channel.waiting)

        channel.resolve(CheckpointDecision.CONTINUE)

        assert await pending == CheckpointDecision.CONTINUE
        assert channel.history == [{'screenId': 'login', 'reason': 'url_mismatch', 'decision': 'continue'}]
        assert not channel.waiting

    @pytest.mark.asyncio
    async def test_timeout_counts_as_skip(self):
        channel = CheckpointChannel(timeout=0.05)

        decision = await channel.request(mismatch_request())

        assert decision == CheckpointDecision.SKIP
        assert channel.history[0]['decision'] == 'skip'

    def test_resolve_without_request_is_ignored(self):
        channel = CheckpointChannel()
        channel.resolve(CheckpointDecision.SKIP)
        assert channel.history == []

    def test_request_title(self):
        assert mismatch_request().title == 'URL mismatch'
        assert CheckpointRequest('a', 'A', '', 'boom').title == 'Navigation error'


class TestOverlayCheckpoint:

    @pytest.mark.asyncio
    async def test_overlay_buttons_resolve(self):
        driver = FakeDriver()
        channel = OverlayCheckpoint(driver)
        await channel.install()
        assert CONTINUE_BINDING in driver.bindings

        pending = asyncio.ensure_future(channel.request(mismatch_request()))
        assert await wait_until(lambda: channel.waiting)
        info = driver.calls[-1][1]
        assert (info['title'], info['screen']) == ('URL mismatch', 'Login')

        driver.bindings[CONTINUE_BINDING](None, False)

        assert await pending == CheckpointDecision.SKIP

    @pytest.mark.asyncio
    async def test_continue_button(self):
        driver = FakeDriver()
        channel = OverlayCheckpoint(driver)
        pending = asyncio.ensure_future(channel.request(mismatch_request()))
        assert await wait_until(lambda: channel.waiting)

        driver.bindings[CONTINUE_BINDING](None, True)

        assert await pending == CheckpointDecision.CONTINUE

    @pytest.mark.asyncio
    async def test_overlay_removed_after_timeout(self):
        driver = FakeDriver()
        channel = OverlayCheckpoint(driver, timeout=0.05)

        assert await channel.request(mismatch_request()) == CheckpointDecision.SKIP
        assert driver.calls[-1] == ('evaluate', None)

    @pytest.mark.asyncio
    async def test_overlay_failure_skips(self):
        channel = OverlayCheckpoint(BrokenDriver())

        assert await channel.request(mismatch_request()) == CheckpointDecision.SKIP
