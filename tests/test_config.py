from screenflow.config import (
    FALLBACK_VIEWPORT,
    ReplayConfig,
    ScreenflowSettings,
    resolve_device_profile,
    resolve_replay_viewport,
)


class TestDeviceProfiles:

    def test_presets(self):
        assert resolve_device_profile('desktop').viewport == {'width': 1440, 'height': 900}
        assert resolve_device_profile('tablet').viewport == {'width': 768, 'height': 1024}
        mobile = resolve_device_profile('mobile')
        assert mobile.viewport == {'width': 375, 'height': 812}
        assert 'iPhone' in mobile.user_agent

    def test_unknown_profile_is_desktop(self):
        assert resolve_device_profile('watch').name == 'desktop'

    def test_custom_size_is_clamped(self):
        profile = resolve_device_profile('custom', width=100, height=5000)
        assert (profile.width, profile.height) == (280, 2560)
        assert resolve_device_profile('custom', width=1024, height=700).viewport == {'width': 1024, 'height': 700}


class TestReplayViewport:

    def test_preset_wins_over_capture(self):
        assert resolve_replay_viewport('mobile', {'w': 1280, 'h': 720}) == {'width': 375, 'height': 812}

    def test_original_uses_captured_viewport(self):
        assert resolve_replay_viewport('original', {'w': 1280, 'h': 720}) == {'width': 1280, 'height': 720}
        assert resolve_replay_viewport('original', {'width': 800, 'height': 600}) == {'width': 800, 'height': 600}

    def test_original_without_capture_falls_back(self):
        assert resolve_replay_viewport('original', None) == FALLBACK_VIEWPORT
        assert resolve_replay_viewport('original', {'w': 0, 'h': 720}) == FALLBACK_VIEWPORT


class TestSettings:

    def test_replay_defaults(self):
        config = ReplayConfig()
        assert config.device_profile == 'original'
        assert (config.navigation_timeout, config.settle_timeout, config.action_settle_timeout) == (30.0, 15.0, 10.0)
        assert config.checkpoint_timeout is None
        assert '.css' in config.ignored_extensions

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('SCREENFLOW_DATA_DIR', '/srv/screens')
        monkeypatch.setenv('SCREENFLOW_DEBUG', '1')

        settings = ScreenflowSettings.from_env()

        assert settings.data_dir == '/srv/screens'
        assert settings.log_dir == '/srv/screens/logs'
        assert settings.debug is True
        assert settings.log_level == 'DEBUG'

    def test_overrides_beat_env(self, monkeypatch):
        monkeypatch.setenv('SCREENFLOW_LOG_LEVEL', 'WARNING')
        monkeypatch.delenv('SCREENFLOW_DEBUG', raising=False)

        settings = ScreenflowSettings.from_env(log_level='ERROR', data_dir=None)

        assert settings.log_level == 'ERROR'
        assert settings.data_dir == 'screenflow_data'
