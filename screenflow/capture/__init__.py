"""
Capture sessions and section editing
"""

from .session import SessionState, SessionContext, FrozenState
from .stream_writer import StreamWriter
from .api_assigner import RetroactiveAssigner
from .capture_service import CaptureService
from .section_editor import SectionEditor

__all__ = [
    'SessionState',
    'SessionContext',
    'FrozenState',
    'StreamWriter',
    'RetroactiveAssigner',
    'CaptureService',
    'SectionEditor',
]
