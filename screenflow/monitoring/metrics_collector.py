import time
import psutil
import logging
from datetime import datetime
from dataclasses import asdict
from collections import defaultdict
from typing import Any, Dict, List
from .run_metrics import RunMetrics, SystemMetrics

logger = logging.getLogger(__name__)

STATUS_FIELDS = {
    'passed': 'passed',
    'failed': 'failed',
    'warning': 'warnings',
    'error': 'errors',
    'skipped': 'skipped',
}

TIMING_FIELDS = {
    'navigate': 'avg_navigate_ms',
    'replay': 'avg_replay_ms',
    'capture': 'avg_capture_ms',
    'compare': 'avg_compare_ms',
}


class MetricsCollector:
    """Aggregates per-screen timings and outcomes of a regression run"""

    def __init__(self):
        self.start_time = time.time()
        self.run_metrics = RunMetrics()
        self.system_metrics = SystemMetrics()
        self.timings: Dict[str, List[int]] = defaultdict(list)

    def record_screen(self, status: str, timings: Dict[str, int] = None, actions_replayed: int = 0,
                      apis_captured: int = 0):
        self.run_metrics.screens_tested += 1
        field_name = STATUS_FIELDS.get(status)
        if field_name:
            setattr(self.run_metrics, field_name, getattr(self.run_metrics, field_name) + 1)
        self.run_metrics.actions_replayed += actions_replayed
        self.run_metrics.apis_captured += apis_captured

        for stage, value in (timings or {}).items():
            if stage in TIMING_FIELDS:
                self.timings[stage].append(value)
                values = self.timings[stage]
                setattr(self.run_metrics, TIMING_FIELDS[stage], round(sum(values) / len(values), 1))

    def record_checkpoint(self):
        self.run_metrics.checkpoints += 1

    def collect_system_metrics(self):
        """Sample CPU, memory and this process's footprint"""
        try:
            self.system_metrics.cpu_percent = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()
            self.system_metrics.memory_used_mb = round(memory.used / (1024 * 1024), 1)
            self.system_metrics.memory_percent = memory.percent

            process = psutil.Process()
            self.system_metrics.process_rss_mb = round(process.memory_info().rss / (1024 * 1024), 1)
            self.system_metrics.process_threads = process.num_threads()
            try:
                self.system_metrics.open_files = (process.num_fds() if hasattr(process, 'num_fds')
                                                  else len(process.open_files()))
            except psutil.AccessDenied:
                self.system_metrics.open_files = 0
        except psutil.Error as e:
            logger.warning(f"Failed to collect system metrics: {e}")

    def get_current_snapshot(self) -> Dict[str, Any]:
        self.collect_system_metrics()
        return {
            'timestamp': datetime.now().isoformat(),
            'uptime_seconds': round(time.time() - self.start_time, 2),
            'run_metrics': asdict(self.run_metrics),
            'system_metrics': asdict(self.system_metrics),
        }
