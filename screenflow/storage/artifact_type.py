from enum import Enum


class ArtifactType(Enum):
    """Files stored for sections, screens and test runs"""
    SCREEN_HTML = 'screen.html'
    DOM_TREE = 'dom.json'
    META = 'meta.json'
    ACTIONS = 'actions.json'
    APIS = 'apis.json'
    FLOW = 'flow.json'
    SESSION = 'session.json'
    REPORT_JSON = 'report.json'
    REPORT_HTML = 'report.html'
    ERROR_PAGE = 'error_page.html'
    LIVE_ACTIONS = '_live_actions.jsonl'
    LIVE_APIS = '_live_apis.jsonl'
    AUTH = 'auth.json'
