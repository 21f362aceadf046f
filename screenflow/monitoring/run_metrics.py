from dataclasses import dataclass


@dataclass
class RunMetrics:
    """Counters for one regression run"""
    screens_tested: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    errors: int = 0
    skipped: int = 0
    checkpoints: int = 0
    actions_replayed: int = 0
    apis_captured: int = 0
    avg_navigate_ms: float = 0.0
    avg_replay_ms: float = 0.0
    avg_capture_ms: float = 0.0
    avg_compare_ms: float = 0.0


@dataclass
class SystemMetrics:
    """Process and host resources sampled with psutil"""
    cpu_percent: float = 0.0
    memory_used_mb: float = 0.0
    memory_percent: float = 0.0
    process_rss_mb: float = 0.0
    process_threads: int = 0
    open_files: int = 0
