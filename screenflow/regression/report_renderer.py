from html import escape
from typing import List
from .report import ScreenResult, ScreenStatus, TestReport

STATUS_COLORS = {
    ScreenStatus.PASSED: '#16a34a',
    ScreenStatus.FAILED: '#dc2626',
    ScreenStatus.WARNING: '#d97706',
    ScreenStatus.ERROR: '#7c3aed',
    ScreenStatus.SKIPPED: '#64748b',
}

OVERALL_COLORS = {'PASSED': '#16a34a', 'WARNING': '#d97706', 'FAILED': '#dc2626'}

MAX_LISTED_CHANGES = 50


def _badge(status: ScreenStatus) -> str:
    return (f'<span class="badge" style="background:{STATUS_COLORS[status]}">'
            f'{escape(status.value.upper())}</span>')


def _dom_changes_html(result: ScreenResult) -> str:
    changes = result.comparison.ui.changes
    if not changes:
        return ''
    rows = ''
    for change in changes[:MAX_LISTED_CHANGES]:
        detail = ''
        if change.property_name is not None:
            detail = f"{escape(change.property_name)}: {escape(str(change.old))} &rarr; {escape(str(change.new))}"
            if change.diff is not None:
                detail += f" ({change.diff:+d}px)"
        rows += f"""
                <tr class="{'style' if change.is_style else ''}">
                    <td>{escape(change.change_type)}</td>
                    <td>{escape(change.kind)}</td>
                    <td><code>{escape(change.element)}</code></td>
                    <td>{detail}</td>
                </tr>"""
    more = ''
    if len(changes) > MAX_LISTED_CHANGES:
        more = f'<p class="muted">... and {len(changes) - MAX_LISTED_CHANGES} more</p>'
    return f"""
            <h4>DOM changes ({len(changes)})</h4>
            <table>
                <thead><tr><th>Type</th><th>Kind</th><th>Element</th><th>Change</th></tr></thead>
                <tbody>{rows}
                </tbody>
            </table>{more}"""


def _api_changes_html(result: ScreenResult) -> str:
    api = result.comparison.api
    if not api.has_changes:
        return ''
    items = ''
    for change in api.added + api.removed + api.modified:
        kinds = ', '.join(sorted({detail['kind'] for detail in change.details}))
        items += (f"<li><strong>{escape(change.change_type)}</strong> <code>{escape(change.endpoint)}</code>"
                  f"{' - ' + escape(kinds) if kinds else ''}</li>")
    return f"""
            <h4>API changes ({api.change_count})</h4>
            <ul>{items}</ul>"""


def _screen_html(result: ScreenResult) -> str:
    score = f"{result.score}%" if result.score is not None else '-'
    timings = ', '.join(f"{escape(name)} {value}ms" for name, value in result.timings.items())
    errors = ''.join(f'<p class="error">{escape(error)}</p>' for error in result.errors)
    details = ''
    if result.comparison is not None:
        details = (f'<p class="muted">{escape(result.comparison.ui.summary)} | '
                   f'{escape(result.comparison.api.summary)}</p>')
        details += _dom_changes_html(result) + _api_changes_html(result)
    return f"""
        <section class="screen" style="border-left-color:{STATUS_COLORS[result.status]}">
            <h3>{result.step}. {escape(result.screen_name)} {_badge(result.status)}
                <span class="score">{score}</span></h3>
            <p class="muted">{escape(result.original_url)} &rarr; {escape(result.live_url or '-')}</p>
            <p class="muted">Actions replayed: {result.actions_replayed}/{result.actions_recorded}
                {'| ' + timings if timings else ''}</p>
            {errors}{details}
        </section>"""


def _notes_html(report: TestReport) -> str:
    notes: List[str] = []
    if report.branch_points:
        notes.append(f"Branches not exercised at: {escape(', '.join(report.branch_points))}")
    if report.unvisited:
        notes.append(f"Screens not visited: {escape(', '.join(report.unvisited))}")
    if not notes:
        return ''
    return '<div class="notes">' + ''.join(f'<p>{note}</p>' for note in notes) + '</div>'


def render_html(report: TestReport) -> str:
    """Self-contained HTML page for one test run"""
    summary = report.summary
    color = OVERALL_COLORS[summary.overall_status]
    average = f"{summary.average_score}%" if summary.average_score is not None else '-'
    screens = ''.join(_screen_html(result) for result in report.results)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Regression report - {escape(report.project)} / {escape(report.section_id)}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                margin: 0; padding: 24px; background: #f8fafc; color: #1e293b; }}
        .summary {{ background: #fff; border-left: 6px solid {color}; padding: 16px 24px;
                    border-radius: 8px; margin-bottom: 24px; }}
        .stats {{ display: flex; gap: 32px; }}
        .stat b {{ display: block; font-size: 1.6rem; }}
        .screen {{ background: #fff; border-left: 6px solid #ccc; padding: 12px 24px;
                   border-radius: 8px; margin-bottom: 16px; }}
        .badge {{ color: #fff; padding: 2px 8px; border-radius: 4px; font-size: 0.75rem; }}
        .score {{ float: right; font-weight: normal; }}
        .muted {{ color: #64748b; font-size: 0.85rem; }}
        .error {{ color: #dc2626; }}
        .notes {{ background: #fff7ed; padding: 8px 24px; border-radius: 8px; margin-bottom: 24px; }}
        table {{ border-collapse: collapse; width: 100%; font-size: 0.85rem; }}
        th, td {{ text-align: left; padding: 4px 8px; border-bottom: 1px solid #e2e8f0; }}
        tr.style td {{ background: #fef2f2; }}
    </style>
</head>
<body>
    <div class="summary">
        <h1 style="color:{color}">{summary.overall_status}</h1>
        <p class="muted">Run <code>{escape(report.test_run_id)}</code> | {escape(report.project)} /
            {escape(report.section_id)} | {escape(report.timestamp)} | {escape(report.device_profile)}
            {report.viewport.get('width', '?')}x{report.viewport.get('height', '?')}</p>
        <div class="stats">
            <div class="stat"><b>{summary.total}</b>screens</div>
            <div class="stat"><b style="color:#16a34a">{summary.passed}</b>passed</div>
            <div class="stat"><b style="color:#dc2626">{summary.failed}</b>failed</div>
            <div class="stat"><b style="color:#d97706">{summary.warnings}</b>warnings</div>
            <div class="stat"><b style="color:#7c3aed">{summary.errors}</b>errors</div>
            <div class="stat"><b style="color:#64748b">{summary.skipped}</b>skipped</div>
            <div class="stat"><b>{average}</b>similarity</div>
            <div class="stat"><b>{report.duration / 1000:.1f}s</b>duration</div>
        </div>
    </div>
    {_notes_html(report)}
    {screens}
</body>
</html>
"""
