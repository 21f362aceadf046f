from .log_manager import LogManager
from .metrics_collector import MetricsCollector
from .run_metrics import RunMetrics, SystemMetrics

__all__ = [
    'LogManager',
    'MetricsCollector',
    'RunMetrics',
    'SystemMetrics',
]
