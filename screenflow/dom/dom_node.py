from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

TEXT_TAG = '#text'


@dataclass
class DomNode:
    """One node of a serialized DOM tree

    Element nodes carry a tag plus optional attributes, computed style
    subset, bounding rect, visibility and form state. Text leaves use the
    tag ``#text`` and carry only ``text``.
    """
    tag: str
    attrs: Dict[str, str] = None
    css: Dict[str, str] = None
    rect: Dict[str, int] = None
    hidden: bool = False
    value: Optional[str] = None
    checked: bool = False
    children: List['DomNode'] = None
    text: Optional[str] = None

    def __post_init__(self):
        if self.attrs is None:
            self.attrs = {}
        if self.css is None:
            self.css = {}
        if self.children is None:
            self.children = []

    @classmethod
    def text_node(cls, text: str) -> 'DomNode':
        return cls(tag=TEXT_TAG, text=text)

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    @property
    def element_children(self) -> List['DomNode']:
        return [child for child in self.children if not child.is_text]

    @property
    def direct_text(self) -> str:
        """Text of the node's own text children, joined with single spaces"""
        return ' '.join(child.text for child in self.children if child.is_text and child.text)

    @property
    def identity(self) -> Optional[str]:
        """Stable key from id or data-testid, when the element has one"""
        if self.attrs.get('data-testid'):
            return f"testid:{self.attrs['data-testid']}"
        if self.attrs.get('id'):
            return f"id:{self.attrs['id']}"
        return None

    def iter_elements(self) -> Iterator['DomNode']:
        """Depth-first iteration over this node and every element below it"""
        if self.is_text:
            return
        yield self
        for child in self.children:
            yield from child.iter_elements()

    def count_elements(self) -> int:
        return sum(1 for _ in self.iter_elements())

    def to_dict(self) -> Dict:
        """Compact JSON form: {t, a, css, rect, hidden, val, checked, c} or {t: '#text', v}"""
        if self.is_text:
            return {'t': TEXT_TAG, 'v': self.text}

        data = {'t': self.tag}
        if self.attrs:
            data['a'] = dict(self.attrs)
        if self.hidden:
            data['hidden'] = True
        if self.css:
            data['css'] = dict(self.css)
        if self.rect:
            data['rect'] = dict(self.rect)
        if self.value:
            data['val'] = self.value
        if self.checked:
            data['checked'] = True
        if self.children:
            data['c'] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'DomNode':
        tag = data.get('t') or data.get('tag') or 'unknown'
        if tag == TEXT_TAG:
            return cls.text_node(data.get('v', ''))

        return cls(
            tag=tag,
            attrs=dict(data.get('a') or {}),
            css=dict(data.get('css') or {}),
            rect=dict(data['rect']) if data.get('rect') else None,
            hidden=bool(data.get('hidden', False)),
            value=data.get('val'),
            checked=bool(data.get('checked', False)),
            children=[cls.from_dict(child) for child in data.get('c') or []],
        )
