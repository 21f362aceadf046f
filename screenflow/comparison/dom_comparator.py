import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from ..dom.dom_node import DomNode

logger = logging.getLogger(__name__)

MAX_COMPARE_DEPTH = 30

# Rect keys as stored, mapped to the property name reported in changes
RECT_PROPERTIES = {'x': 'left', 'y': 'top', 'w': 'width', 'h': 'height'}

CSS_CATEGORIES = {
    'color': {'color', 'backgroundColor', 'borderColor'},
    'typography': {'fontSize', 'fontWeight', 'fontFamily', 'lineHeight',
                   'textAlign', 'textDecoration', 'letterSpacing'},
    'spacing': {'padding', 'margin', 'gap'},
    'position': {'position', 'top', 'left', 'right', 'bottom', 'width', 'height',
                 'maxWidth', 'maxHeight', 'minWidth', 'minHeight'},
    'border': {'border', 'borderRadius', 'boxShadow'},
    'layout': {'display', 'flexDirection', 'justifyContent', 'alignItems',
               'overflow', 'zIndex', 'opacity', 'visibility', 'transform'},
}

STYLE_KINDS = {'css', 'rect', 'visibility'}


def categorize_property(prop: str) -> str:
    for category, props in CSS_CATEGORIES.items():
        if prop in props:
            return category
    return 'other'


@dataclass
class DomChange:
    """One difference between two DOM trees"""
    change_type: str  # added, removed, modified
    element: str
    kind: str = 'element'  # element, css, rect, visibility, text, attribute, value
    property_name: Optional[str] = None
    old: Any = None
    new: Any = None
    diff: Optional[int] = None
    category: str = 'structure'

    @property
    def is_style(self) -> bool:
        return self.change_type == 'modified' and self.kind in STYLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.change_type,
            'element': self.element,
            'kind': self.kind,
            'category': self.category,
        }
        if self.property_name is not None:
            data['property'] = self.property_name
            data['old'] = self.old
            data['new'] = self.new
        if self.diff is not None:
            data['diff'] = self.diff
        return data


@dataclass
class DomComparison:
    """Result of comparing an original DOM tree with a live one"""
    similarity_score: float = 100.0
    changes: List[DomChange] = field(default_factory=list)
    matched_units: int = 0
    total_units: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    @property
    def added(self) -> List[DomChange]:
        return [c for c in self.changes if c.change_type == 'added']

    @property
    def removed(self) -> List[DomChange]:
        return [c for c in self.changes if c.change_type == 'removed']

    @property
    def modified(self) -> List[DomChange]:
        return [c for c in self.changes if c.change_type == 'modified']

    @property
    def style_changes(self) -> List[DomChange]:
        return [c for c in self.changes if c.is_style]

    @property
    def categories(self) -> Dict[str, int]:
        return dict(Counter(c.category for c in self.style_changes))

    @property
    def summary(self) -> str:
        if not self.changes:
            return "No DOM changes"
        parts = []
        style = self.style_changes
        if style:
            detail = ', '.join(f"{count} {name}" for name, count in sorted(self.categories.items()))
            parts.append(f"{len(style)} style changes ({detail})")
        content = len(self.modified) - len(style)
        if content:
            parts.append(f"{content} content changes")
        if self.added:
            parts.append(f"{len(self.added)} elements added")
        if self.removed:
            parts.append(f"{len(self.removed)} elements removed")
        return ', '.join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hasChanges': self.has_changes,
            'similarityScore': self.similarity_score,
            'summary': self.summary,
            'counts': {
                'added': len(self.added),
                'removed': len(self.removed),
                'modified': len(self.modified),
                'style': len(self.style_changes),
            },
            'categories': self.categories,
            'changes': [change.to_dict() for change in self.changes],
        }


def element_label(node: DomNode) -> str:
    label = node.tag
    if node.attrs.get('id'):
        return f"{label}#{node.attrs['id']}"
    if node.attrs.get('data-testid'):
        return f"{label}[data-testid=\"{node.attrs['data-testid']}\"]"
    classes = (node.attrs.get('class') or '').split()
    if classes:
        label += '.' + '.'.join(classes[:2])
    return label


def _properties(node: DomNode) -> Dict[Tuple[str, str], Any]:
    """Flatten the comparable properties of an element into (kind, name) -> value"""
    props = {}
    for name, value in node.css.items():
        props[('css', name)] = value
    if node.rect:
        for key, name in RECT_PROPERTIES.items():
            if key in node.rect:
                props[('rect', name)] = node.rect[key]
    for name, value in node.attrs.items():
        props[('attribute', name)] = value
    text = node.direct_text
    if text:
        props[('text', 'text')] = text
    if node.value:
        props[('value', 'value')] = node.value
    if node.checked:
        props[('value', 'checked')] = True
    return props


def subtree_units(node: DomNode) -> int:
    """Units an unmatched subtree contributes to the total"""
    return sum(1 + len(_properties(element)) for element in node.iter_elements())


class DomComparator:
    """Keyed structural diff of two serialized DOM trees

    Children are matched by id/data-testid first, then by tag and position
    among the remaining same-tag siblings. Every compared property of a
    matched pair is one unit; an unmatched element counts its presence and
    its properties as unmatched units. The similarity score is the share of
    matched, unchanged units.
    """

    def __init__(self, max_depth: int = MAX_COMPARE_DEPTH):
        self.max_depth = max_depth

    def compare(self, original: Optional[DomNode], live: Optional[DomNode]) -> DomComparison:
        result = DomComparison()
        if original is None and live is None:
            return result

        if original is None or live is None or original.tag != live.tag:
            if original is not None:
                self._unmatched(original, 'removed', '', result)
            if live is not None:
                self._unmatched(live, 'added', '', result)
        else:
            self._compare_pair(original, live, element_label(original), 0, result)

        result.similarity_score = self._score(result.matched_units, result.total_units)
        logger.debug(f"DOM comparison: {result.summary} ({result.similarity_score}%)")
        return result

    @staticmethod
    def _score(matched: int, total: int) -> float:
        if total == 0:
            return 100.0
        return round(matched / total * 100, 2)

    def _unmatched(self, node: DomNode, change_type: str, parent_label: str, result: DomComparison):
        label = f"{parent_label} > {element_label(node)}" if parent_label else element_label(node)
        result.changes.append(DomChange(change_type=change_type, element=label))
        result.total_units += subtree_units(node)

    def _compare_pair(self, old: DomNode, new: DomNode, label: str, depth: int, result: DomComparison):
        result.total_units += 1
        result.matched_units += 1

        if old.hidden != new.hidden:
            result.total_units += 1
            result.changes.append(DomChange(
                change_type='modified', element=label, kind='visibility', property_name='hidden',
                old=old.hidden, new=new.hidden, category='layout',
            ))

        old_props = _properties(old)
        new_props = _properties(new)
        for key in list(old_props) + [k for k in new_props if k not in old_props]:
            result.total_units += 1
            old_value = old_props.get(key)
            new_value = new_props.get(key)
            if old_value == new_value:
                result.matched_units += 1
                continue
            kind, name = key
            result.changes.append(self._modified(label, kind, name, old_value, new_value))

        if depth >= self.max_depth:
            return

        for old_child, new_child in self._match_children(old.element_children, new.element_children):
            if old_child is None:
                self._unmatched(new_child, 'added', label, result)
            elif new_child is None:
                self._unmatched(old_child, 'removed', label, result)
            else:
                child_label = f"{label} > {element_label(old_child)}"
                self._compare_pair(old_child, new_child, child_label, depth + 1, result)

    @staticmethod
    def _modified(label: str, kind: str, name: str, old_value: Any, new_value: Any) -> DomChange:
        change = DomChange(change_type='modified', element=label, kind=kind, property_name=name,
                           old=old_value, new=new_value, category='content')
        if kind == 'css':
            change.category = categorize_property(name)
        elif kind == 'rect':
            change.category = 'position'
            if isinstance(old_value, (int, float)) and isinstance(new_value, (int, float)):
                change.diff = int(new_value - old_value)
        return change

    @staticmethod
    def _match_children(old_children: List[DomNode],
                        new_children: List[DomNode]) -> List[Tuple[Optional[DomNode], Optional[DomNode]]]:
        """Pair children: keyed first, then by tag and order; unpaired nodes get None"""
        new_keyed: Dict[str, DomNode] = {}
        for child in new_children:
            key = child.identity
            if key and key not in new_keyed:
                new_keyed[key] = child

        pairs = []
        claimed = set()
        unkeyed_old = []
        for child in old_children:
            key = child.identity
            match = new_keyed.get(key) if key else None
            if match is not None and id(match) not in claimed and match.tag == child.tag:
                claimed.add(id(match))
                pairs.append((child, match))
            else:
                unkeyed_old.append(child)

        old_keys = {child.identity for child in old_children if child.identity}
        new_by_tag = defaultdict(list)
        for child in new_children:
            if id(child) in claimed or (child.identity and child.identity in old_keys):
                continue
            new_by_tag[child.tag].append(child)

        for child in unkeyed_old:
            candidates = new_by_tag.get(child.tag)
            if candidates and not child.identity:
                match = candidates.pop(0)
                claimed.add(id(match))
                pairs.append((child, match))
            else:
                pairs.append((child, None))

        for child in new_children:
            if id(child) not in claimed:
                pairs.append((None, child))
        return pairs
