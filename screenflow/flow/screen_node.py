from enum import Enum
from dataclasses import dataclass
from typing import Dict


class ScreenType(Enum):
    """Kinds of captured screen"""
    START = "start"
    PAGE = "page"
    MODAL = "modal"
    FORM = "form"
    LIST = "list"

    @classmethod
    def parse(cls, value) -> 'ScreenType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.PAGE


@dataclass
class ScreenNode:
    """One captured screen in a section's flow graph"""
    id: str
    name: str
    type: ScreenType = ScreenType.PAGE
    url_path: str = '/'
    nested_path: str = ''
    dom_order: int = 0

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'path': self.url_path,
            'nestedPath': self.nested_path,
            'domOrder': self.dom_order,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ScreenNode':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            type=ScreenType.parse(data.get('type', 'page')),
            url_path=data.get('path', '/'),
            nested_path=data.get('nestedPath', ''),
            dom_order=data.get('domOrder', 0),
        )


@dataclass
class FlowEdge:
    """Transition between two screens, labelled with the click that caused it"""
    source: str
    target: str
    label: str = ''
    action_count: int = 0
    api_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'from': self.source,
            'to': self.target,
            'label': self.label,
            'actions': self.action_count,
            'apis': self.api_count,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'FlowEdge':
        return cls(
            source=data['from'],
            target=data['to'],
            label=data.get('label') or '',
            action_count=data.get('actions', 0) or 0,
            api_count=data.get('apis', 0) or 0,
        )
