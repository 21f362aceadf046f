import os
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class DeviceProfile:
    """Viewport and user agent used for a browser context"""
    name: str
    width: int
    height: int
    user_agent: Optional[str] = None

    @property
    def viewport(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}


DEVICE_PRESETS: Dict[str, DeviceProfile] = {
    'desktop': DeviceProfile('desktop', 1440, 900),
    'tablet': DeviceProfile(
        'tablet', 768, 1024,
        user_agent='Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 '
                   '(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1'
    ),
    'mobile': DeviceProfile(
        'mobile', 375, 812,
        user_agent='Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 '
                   '(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1'
    ),
}

CUSTOM_WIDTH_RANGE = (280, 3840)
CUSTOM_HEIGHT_RANGE = (400, 2560)
FALLBACK_VIEWPORT = {'width': 1440, 'height': 900}


def _clamp(value: int, bounds) -> int:
    low, high = bounds
    return max(low, min(high, int(value)))


def resolve_device_profile(name: str = 'desktop', width: int = None, height: int = None) -> DeviceProfile:
    """Resolve a profile name (plus optional custom size) into a DeviceProfile

    Unknown names fall back to desktop. Custom sizes are clamped to the
    supported viewport range.
    """
    if name == 'custom':
        return DeviceProfile(
            'custom',
            _clamp(width or FALLBACK_VIEWPORT['width'], CUSTOM_WIDTH_RANGE),
            _clamp(height or FALLBACK_VIEWPORT['height'], CUSTOM_HEIGHT_RANGE),
        )
    return DEVICE_PRESETS.get(name, DEVICE_PRESETS['desktop'])


def resolve_replay_viewport(profile_name: str, original_viewport: Optional[Dict] = None) -> Dict[str, int]:
    """Viewport for a regression run: a preset, or the viewport the screen was captured at"""
    if profile_name in DEVICE_PRESETS:
        return DEVICE_PRESETS[profile_name].viewport

    if original_viewport:
        width = original_viewport.get('w') or original_viewport.get('width')
        height = original_viewport.get('h') or original_viewport.get('height')
        if width and height:
            return {'width': int(width), 'height': int(height)}

    return dict(FALLBACK_VIEWPORT)


@dataclass
class BrowserConfig:
    """Configuration for the controlled browser"""
    headless: bool = False
    executable_path: Optional[str] = None
    launch_args: List[str] = None
    ignore_https_errors: bool = True

    def __post_init__(self):
        if self.launch_args is None:
            self.launch_args = [
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-blink-features=AutomationControlled',
            ]


@dataclass
class CaptureConfig:
    """Configuration for interactive capture sessions (timeouts in seconds)"""
    navigation_timeout: float = 45.0
    action_batch_interval: float = 0.5
    stream_flush_interval: float = 0.1
    settle_timeout: float = 5.0
    inject_auth: bool = True


@dataclass
class ReplayConfig:
    """Configuration for regression runs (timeouts in seconds)"""
    device_profile: str = 'original'
    navigation_timeout: float = 30.0
    settle_timeout: float = 15.0
    settle_delay: float = 1.5
    action_settle_timeout: float = 10.0
    selector_timeout: float = 5.0
    action_timeout: float = 2.0
    scroll_delay: float = 0.3
    checkpoint_timeout: Optional[float] = None
    keep_browser_open: bool = False
    ignored_extensions: List[str] = None

    def __post_init__(self):
        if self.ignored_extensions is None:
            self.ignored_extensions = [
                '.js', '.css', '.png', '.jpg', '.jpeg', '.gif', '.svg',
                '.woff', '.woff2', '.ttf', '.ico', '.map',
            ]


@dataclass
class ScreenflowSettings:
    """Top-level settings shared by the command line and services"""
    data_dir: str = 'screenflow_data'
    log_dir: str = None
    log_level: str = 'INFO'
    debug: bool = False

    def __post_init__(self):
        if self.log_dir is None:
            self.log_dir = os.path.join(self.data_dir, 'logs')

    @classmethod
    def from_env(cls, **overrides) -> 'ScreenflowSettings':
        """Build settings from SCREENFLOW_* environment variables"""
        values = {
            'data_dir': os.environ.get('SCREENFLOW_DATA_DIR', 'screenflow_data'),
            'log_level': os.environ.get('SCREENFLOW_LOG_LEVEL', 'INFO'),
            'debug': os.environ.get('SCREENFLOW_DEBUG', '') in ('1', 'true', 'yes'),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if values['debug']:
            values['log_level'] = 'DEBUG'
        return cls(**values)
