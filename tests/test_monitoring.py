import json
import logging
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from screenflow.error_handler import (
    BrowserDisconnectedError,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    StorageError,
)
from screenflow.monitoring import LogManager, MetricsCollector


class TestErrorHandler:

    def test_classification(self):
        handler = ErrorHandler()

        assert handler.classify_error(PlaywrightTimeoutError("Timeout"), 'navigate') == ErrorType.NAVIGATION_TIMEOUT
        assert handler.classify_error(PlaywrightTimeoutError("Timeout"), 'replay') == ErrorType.SELECTOR_TIMEOUT
        assert handler.classify_error(BrowserDisconnectedError("gone")) == ErrorType.BROWSER_DISCONNECTED
        assert handler.classify_error(PlaywrightError("Target closed")) == ErrorType.BROWSER_DISCONNECTED
        assert handler.classify_error(PlaywrightError("net::ERR_NAME_NOT_RESOLVED")) == ErrorType.NAVIGATION_ERROR
        assert handler.classify_error(StorageError("disk full"), 'capture') == ErrorType.STORAGE_ERROR
        assert handler.classify_error(ValueError("bad tree"), 'capture') == ErrorType.SERIALIZATION_ERROR
        assert handler.classify_error(ValueError("?")) == ErrorType.UNKNOWN_ERROR

    def test_severity(self):
        assert ErrorHandler.severity_for(ErrorType.BROWSER_DISCONNECTED) == ErrorSeverity.FATAL
        assert ErrorHandler.severity_for(ErrorType.SELECTOR_TIMEOUT) == ErrorSeverity.SOFT
        assert ErrorHandler.severity_for(ErrorType.NAVIGATION_ERROR) == ErrorSeverity.CHECKPOINT

    def test_summary(self):
        handler = ErrorHandler()
        assert handler.get_error_summary() == {'total_errors': 0}

        info = handler.record('login', 'capture', PlaywrightError("Execution context was destroyed"), attempt=2)
        handler.record_mismatch('login', '/login', '/sso')
        handler.record('home', 'navigate', PlaywrightTimeoutError("Timeout 30000ms exceeded"))

        assert info.to_dict()['error_type'] == 'serialization_error'
        assert info.attempt == 2
        assert handler.get_error_summary() == {
            'total_errors': 3,
            'screens_with_errors': 2,
            'error_types': {'serialization_error': 1, 'url_mismatch': 1, 'navigation_timeout': 1},
            'severities': {'checkpoint': 3},
        }


class TestMetricsCollector:

    def test_screen_counters_and_mean_timings(self):
        metrics = MetricsCollector()

        metrics.record_screen('passed', {'navigate': 100, 'capture': 40}, actions_replayed=3, apis_captured=2)
        metrics.record_screen('warning', {'navigate': 300, 'unknown': 5}, actions_replayed=1)
        metrics.record_screen('error')
        metrics.record_checkpoint()

        run = metrics.run_metrics
        assert (run.screens_tested, run.passed, run.warnings, run.errors) == (3, 1, 1, 1)
        assert (run.actions_replayed, run.apis_captured, run.checkpoints) == (4, 2, 1)
        assert run.avg_navigate_ms == 200.0
        assert run.avg_capture_ms == 40.0

    def test_snapshot(self):
        snapshot = MetricsCollector().get_current_snapshot()

        assert set(snapshot) == {'timestamp', 'uptime_seconds', 'run_metrics', 'system_metrics'}
        assert snapshot['system_metrics']['process_rss_mb'] > 0
        assert snapshot['system_metrics']['process_threads'] >= 1


class TestLogManager:

    def test_performance_events_are_json_lines(self, tmp_path, restore_logging):
        manager = LogManager(log_dir=str(tmp_path / 'logs'))

        manager.log_performance_event('screen_tested', screen_id='login', status='passed', score=100.0)
        manager.log_performance_event('regression_run', duration_ms=4200)

        perf_file = next((tmp_path / 'logs').glob('performance_*.log'))
        events = [json.loads(line) for line in perf_file.read_text().splitlines()]
        assert [event['event_type'] for event in events] == ['screen_tested', 'regression_run']
        assert events[0]['screen_id'] == 'login'

    def test_warnings_go_to_error_log(self, tmp_path, restore_logging):
        LogManager(log_dir=str(tmp_path / 'logs'), log_level='INFO')

        logging.getLogger('screenflow.test').warning("URL mismatch at login")
        logging.getLogger('screenflow.test').info("Replaying 2 actions")

        error_log = next((tmp_path / 'logs').glob('errors_*.log')).read_text()
        assert 'URL mismatch at login' in error_log
        assert 'Replaying 2 actions' not in error_log
        assert 'Replaying 2 actions' in next((tmp_path / 'logs').glob('screenflow_*.log')).read_text()
