"""
Recording and replaying user interactions
"""

from .action_event import ActionEvent, ActionType, REPLAYABLE_TYPES
from .recorder import ActionRecorder, RECORD_BINDING
from .replayer import ActionReplayer, ReplayResult, optimize_actions

__all__ = [
    'ActionEvent',
    'ActionType',
    'REPLAYABLE_TYPES',
    'ActionRecorder',
    'RECORD_BINDING',
    'ActionReplayer',
    'ReplayResult',
    'optimize_actions',
]
