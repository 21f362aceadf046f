"""
Regression runs, operator checkpoints and reports
"""

from .checkpoint import (
    CheckpointChannel,
    CheckpointDecision,
    CheckpointRequest,
    ConsoleCheckpoint,
    OverlayCheckpoint,
)
from .report import ReportSummary, ScreenResult, ScreenStatus, TestReport, classify_comparison
from .report_renderer import render_html
from .orchestrator import RegressionOrchestrator

__all__ = [
    'CheckpointChannel',
    'CheckpointDecision',
    'CheckpointRequest',
    'ConsoleCheckpoint',
    'OverlayCheckpoint',
    'ReportSummary',
    'ScreenResult',
    'ScreenStatus',
    'TestReport',
    'classify_comparison',
    'render_html',
    'RegressionOrchestrator',
]
