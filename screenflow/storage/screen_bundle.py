from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from ..actions.action_event import ActionEvent
from ..dom.dom_node import DomNode
from ..network.api_exchange import ApiExchange


def screen_stats(actions: List[ActionEvent], apis: List[ApiExchange]) -> Dict[str, Any]:
    """Counters kept in a screen's meta.json"""
    endpoints = []
    for api in apis:
        if api.endpoint not in endpoints:
            endpoints.append(api.endpoint)
    return {
        'actions': len(actions),
        'apis': len(apis),
        'actionTypes': dict(Counter(action.type_name for action in actions)),
        'apiEndpoints': endpoints,
    }


@dataclass
class ScreenBundle:
    """Everything stored for one captured screen"""
    nested_path: str
    html: str = ''
    dom: Optional[DomNode] = None
    dom_meta: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    actions: List[ActionEvent] = field(default_factory=list)
    apis: List[ApiExchange] = field(default_factory=list)

    @property
    def screen_id(self) -> str:
        return self.meta.get('id') or self.nested_path.rsplit('/', 1)[-1]

    @property
    def url(self) -> str:
        return self.meta.get('url') or self.dom_meta.get('url', '')

    @property
    def viewport(self) -> Optional[Dict[str, int]]:
        return self.meta.get('viewport') or self.dom_meta.get('viewport')

    def dom_document(self) -> Dict[str, Any]:
        return {
            'body': self.dom.to_dict() if self.dom else None,
            **{key: value for key, value in self.dom_meta.items() if key != 'body'},
        }

    def refresh_stats(self):
        self.meta['stats'] = screen_stats(self.actions, self.apis)
