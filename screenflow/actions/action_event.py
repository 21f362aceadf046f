from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ActionType(Enum):
    """Kinds of recorded user interaction"""
    CLICK = "click"
    DBLCLICK = "dblclick"
    INPUT = "input"
    CHANGE = "change"
    KEYDOWN = "keydown"
    SELECT = "select"
    SCROLL = "scroll"
    NAVIGATION = "navigation"
    # Recorded for context only
    FOCUS = "focus"
    HOVER = "hover"
    OTHER = "other"


REPLAYABLE_TYPES = frozenset({
    ActionType.INPUT,
    ActionType.CHANGE,
    ActionType.KEYDOWN,
    ActionType.CLICK,
    ActionType.DBLCLICK,
    ActionType.SELECT,
    ActionType.SCROLL,
    ActionType.NAVIGATION,
})

# Types whose runs on one selector collapse to the last value
VALUE_TYPES = frozenset({ActionType.INPUT, ActionType.CHANGE})


@dataclass
class ActionEvent:
    """A single recorded interaction

    Which optional fields are set depends on ``type``: inputs carry
    ``selector`` and ``value``, clicks ``selector`` and ``text``, scrolls
    ``position``, keydowns ``key`` and navigations ``from_url``/``to_url``.
    """
    type: ActionType
    time: int = 0
    selector: Optional[str] = None
    value: Optional[str] = None
    text: Optional[str] = None
    position: Optional[Dict[str, int]] = None
    key: Optional[str] = None
    from_url: Optional[str] = None
    to_url: Optional[str] = None
    trigger: Optional[str] = None
    raw_type: Optional[str] = None

    @property
    def replayable(self) -> bool:
        return self.type in REPLAYABLE_TYPES

    @property
    def type_name(self) -> str:
        return self.raw_type if self.type == ActionType.OTHER and self.raw_type else self.type.value

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.type_name}
        optional = {
            'selector': self.selector,
            'value': self.value,
            'text': self.text,
            'position': self.position,
            'key': self.key,
            'from': self.from_url,
            'to': self.to_url,
            'trigger': self.trigger,
        }
        data.update({name: value for name, value in optional.items() if value is not None})
        data['time'] = self.time
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActionEvent':
        raw_type = str(data.get('type', 'other'))
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            action_type = ActionType.OTHER

        value = data.get('value')
        return cls(
            type=action_type,
            time=data.get('time') or 0,
            selector=data.get('selector'),
            value=str(value) if value is not None else None,
            text=data.get('text'),
            position=data.get('position'),
            key=data.get('key'),
            from_url=data.get('from'),
            to_url=data.get('to'),
            trigger=data.get('trigger'),
            raw_type=raw_type if action_type == ActionType.OTHER else None,
        )
