from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from ..comparison.comparison_engine import ScreenComparison


class ScreenStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    ERROR = "error"
    SKIPPED = "skipped"


STATUS_ICONS = {
    ScreenStatus.PASSED: '✅',
    ScreenStatus.FAILED: '❌',
    ScreenStatus.WARNING: '⚠️',
    ScreenStatus.ERROR: '💥',
    ScreenStatus.SKIPPED: '⏭️',
}


def classify_comparison(comparison: ScreenComparison) -> ScreenStatus:
    """passed without changes, failed on any style change, warning otherwise"""
    if not comparison.has_changes:
        return ScreenStatus.PASSED
    if comparison.style_change_count > 0:
        return ScreenStatus.FAILED
    return ScreenStatus.WARNING


@dataclass
class ScreenResult:
    """Outcome of testing one screen"""
    step: int
    screen_id: str
    screen_name: str
    original_url: str = ''
    live_url: str = ''
    status: ScreenStatus = ScreenStatus.PASSED
    comparison: Optional[ScreenComparison] = None
    timings: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    actions_replayed: int = 0
    actions_recorded: int = 0

    @property
    def score(self) -> Optional[float]:
        return self.comparison.overall_score if self.comparison else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'screenId': self.screen_id,
            'screenName': self.screen_name,
            'originalUrl': self.original_url,
            'liveUrl': self.live_url,
            'status': self.status.value,
            'score': self.score,
            'actionsReplayed': self.actions_replayed,
            'actionsRecorded': self.actions_recorded,
            'timings': self.timings,
            'errors': self.errors,
            'comparison': self.comparison.to_dict() if self.comparison else None,
        }


@dataclass
class ReportSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    errors: int = 0
    skipped: int = 0
    average_score: Optional[float] = None

    @property
    def overall_status(self) -> str:
        if self.failed or self.errors:
            return 'FAILED'
        if self.warnings:
            return 'WARNING'
        return 'PASSED'

    @classmethod
    def from_results(cls, results: List[ScreenResult]) -> 'ReportSummary':
        summary = cls(total=len(results))
        for result in results:
            if result.status == ScreenStatus.PASSED:
                summary.passed += 1
            elif result.status == ScreenStatus.FAILED:
                summary.failed += 1
            elif result.status == ScreenStatus.WARNING:
                summary.warnings += 1
            elif result.status == ScreenStatus.ERROR:
                summary.errors += 1
            else:
                summary.skipped += 1

        scores = [result.score for result in results if result.score is not None]
        if scores:
            summary.average_score = round(sum(scores) / len(scores), 2)
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'passed': self.passed,
            'failed': self.failed,
            'warnings': self.warnings,
            'errors': self.errors,
            'skipped': self.skipped,
            'averageScore': self.average_score,
            'overallStatus': self.overall_status,
        }


@dataclass(frozen=True)
class TestReport:
    """Immutable result of one regression run"""
    __test__ = False

    test_run_id: str
    project: str
    section_id: str
    timestamp: str
    duration: int
    device_profile: str
    viewport: Dict[str, int]
    results: List[ScreenResult]
    branch_points: List[str] = field(default_factory=list)
    unvisited: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    error_summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> ReportSummary:
        return ReportSummary.from_results(self.results)

    @property
    def overall_status(self) -> str:
        return self.summary.overall_status

    def summary_lines(self) -> List[str]:
        """Pre-formatted lines for terminal output"""
        summary = self.summary
        lines = [
            f"Test run {self.test_run_id} ({self.project}/{self.section_id}) - {summary.overall_status}",
            f"  {summary.passed} passed, {summary.failed} failed, {summary.warnings} warnings, "
            f"{summary.errors} errors, {summary.skipped} skipped in {self.duration / 1000:.1f}s",
        ]
        if summary.average_score is not None:
            lines.append(f"  Average similarity: {summary.average_score}%")
        for result in self.results:
            icon = STATUS_ICONS[result.status]
            score = f" {result.score}%" if result.score is not None else ''
            lines.append(f"  {icon} {result.step}. {result.screen_name}: {result.status.value}{score}")
            if result.comparison is not None and result.comparison.has_changes:
                lines.append(f"       DOM: {result.comparison.ui.summary}")
                lines.append(f"       API: {result.comparison.api.summary}")
            for error in result.errors:
                lines.append(f"       {error}")
        if self.branch_points:
            lines.append(f"  Branches not exercised at: {', '.join(self.branch_points)}")
        if self.unvisited:
            lines.append(f"  Screens not visited: {', '.join(self.unvisited)}")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            'testRunId': self.test_run_id,
            'project': self.project,
            'sectionId': self.section_id,
            'timestamp': self.timestamp,
            'duration': self.duration,
            'deviceProfile': self.device_profile,
            'viewport': self.viewport,
            'summary': self.summary.to_dict(),
            'screens': [result.to_dict() for result in self.results],
            'branchPoints': self.branch_points,
            'unvisited': self.unvisited,
            'metrics': self.metrics,
            'errors': self.error_summary,
        }
