import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List
from ..network.api_exchange import ApiExchange

logger = logging.getLogger(__name__)

MAX_SHAPE_DEPTH = 5
ARRAY_PREFIX = 3
MAX_FIELD_DIFFS = 20


def type_name(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    return type(value).__name__


def diff_shapes(old: Any, new: Any, path: str = '', depth: int = 0,
                diffs: List[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Structural differences between two JSON values

    Objects are compared key by key, arrays by length and by their first
    few elements. Scalar values are not compared, only their types.
    """
    if diffs is None:
        diffs = []
    if depth > MAX_SHAPE_DEPTH or len(diffs) >= MAX_FIELD_DIFFS:
        return diffs

    old_type, new_type = type_name(old), type_name(new)
    where = path or '(root)'
    if old_type != new_type:
        diffs.append({'kind': 'type_changed', 'path': where, 'old': old_type, 'new': new_type})
        return diffs

    if old_type == 'object':
        for key in old:
            if len(diffs) >= MAX_FIELD_DIFFS:
                break
            child_path = f"{path}.{key}" if path else key
            if key not in new:
                diffs.append({'kind': 'field_removed', 'path': child_path})
            else:
                diff_shapes(old[key], new[key], child_path, depth + 1, diffs)
        for key in new:
            if len(diffs) >= MAX_FIELD_DIFFS:
                break
            if key not in old:
                diffs.append({'kind': 'field_added', 'path': f"{path}.{key}" if path else key})

    elif old_type == 'array':
        if len(old) != len(new):
            diffs.append({'kind': 'length_changed', 'path': where, 'old': len(old), 'new': len(new)})
        for index in range(min(len(old), len(new), ARRAY_PREFIX)):
            diff_shapes(old[index], new[index], f"{path}[{index}]", depth + 1, diffs)

    return diffs[:MAX_FIELD_DIFFS]


@dataclass
class ApiChange:
    """Difference for one ``METHOD /path`` endpoint"""
    endpoint: str
    change_type: str  # added, removed, modified
    details: List[Dict[str, Any]] = field(default_factory=list)
    calls_original: int = 0
    calls_live: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'endpoint': self.endpoint,
            'type': self.change_type,
            'callsOriginal': self.calls_original,
            'callsLive': self.calls_live,
            'details': self.details,
        }


@dataclass
class ApiComparison:
    """Result of comparing two sets of API exchanges"""
    added: List[ApiChange] = field(default_factory=list)
    removed: List[ApiChange] = field(default_factory=list)
    modified: List[ApiChange] = field(default_factory=list)
    similarity_score: float = 100.0
    total_original: int = 0
    total_live: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.removed) + len(self.modified)

    @property
    def summary(self) -> str:
        if not self.has_changes:
            return f"No API changes ({self.total_original} calls)"
        return (f"{len(self.added)} endpoints added, {len(self.removed)} removed, "
                f"{len(self.modified)} modified")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hasChanges': self.has_changes,
            'similarityScore': self.similarity_score,
            'summary': self.summary,
            'totalOriginal': self.total_original,
            'totalLive': self.total_live,
            'added': [change.to_dict() for change in self.added],
            'removed': [change.to_dict() for change in self.removed],
            'modified': [change.to_dict() for change in self.modified],
        }


class ApiComparator:
    """Compares API exchanges grouped by method and path (host and query ignored)"""

    @staticmethod
    def group_by_endpoint(apis: List[ApiExchange]) -> Dict[str, List[ApiExchange]]:
        groups = OrderedDict()
        for api in apis:
            groups.setdefault(api.endpoint, []).append(api)
        return groups

    @staticmethod
    def _resolve_body(api: ApiExchange, bodies_by_id: Dict[str, Any]) -> Any:
        """Response body, following a dedup marker back to the first occurrence"""
        if api.deduplicated:
            return bodies_by_id.get(api.dedup_of)
        return api.response_body

    @staticmethod
    def body_index(apis: List[ApiExchange], known: Dict[str, Any] = None) -> Dict[str, Any]:
        """Response bodies by exchange id, layered over ``known``"""
        index = dict(known or {})
        index.update((api.id, api.response_body) for api in apis if not api.deduplicated)
        return index

    def compare(self, original: List[ApiExchange], live: List[ApiExchange],
                original_bodies: Dict[str, Any] = None, live_bodies: Dict[str, Any] = None) -> ApiComparison:
        """Compare two exchange lists endpoint by endpoint

        Dedup markers are resolved through ``original_bodies``/``live_bodies``
        (bodies of the whole section) before the lists' own exchanges.
        """
        original = original or []
        live = live or []
        result = ApiComparison(total_original=len(original), total_live=len(live))

        bodies = (
            self.body_index(original, original_bodies),
            self.body_index(live, live_bodies),
        )
        old_groups = self.group_by_endpoint(original)
        new_groups = self.group_by_endpoint(live)
        endpoints = list(old_groups) + [e for e in new_groups if e not in old_groups]

        unchanged = 0
        for endpoint in endpoints:
            old_calls = old_groups.get(endpoint, [])
            new_calls = new_groups.get(endpoint, [])
            change = ApiChange(endpoint=endpoint, change_type='modified',
                               calls_original=len(old_calls), calls_live=len(new_calls))
            if not old_calls:
                change.change_type = 'added'
                result.added.append(change)
                continue
            if not new_calls:
                change.change_type = 'removed'
                result.removed.append(change)
                continue

            change.details = self._compare_calls(old_calls, new_calls, bodies)
            if change.details:
                result.modified.append(change)
            else:
                unchanged += 1

        if endpoints:
            result.similarity_score = round(unchanged / len(endpoints) * 100, 2)
        return result

    def _compare_calls(self, old_calls: List[ApiExchange], new_calls: List[ApiExchange],
                       bodies) -> List[Dict[str, Any]]:
        details = []
        for index, (old, new) in enumerate(zip(old_calls, new_calls)):
            if old.status != new.status:
                details.append({'kind': 'status_changed', 'call': index,
                                'old': old.status, 'new': new.status})

            old_body = self._resolve_body(old, bodies[0])
            new_body = self._resolve_body(new, bodies[1])
            for api, body in ((old, old_body), (new, new_body)):
                if api.deduplicated and body is None:
                    logger.warning(f"No stored body for {api.endpoint} (first occurrence {api.dedup_of})")
            if old_body is not None and new_body is not None:
                shape = diff_shapes(old_body, new_body)
                if shape:
                    details.append({'kind': 'response_changed', 'call': index, 'fields': shape})

            if old.request_body is not None or new.request_body is not None:
                shape = diff_shapes(old.request_body, new.request_body)
                if shape:
                    details.append({'kind': 'request_changed', 'call': index, 'fields': shape})

        if len(new_calls) > len(old_calls):
            details.append({'kind': 'added_call', 'count': len(new_calls) - len(old_calls)})
        elif len(old_calls) > len(new_calls):
            details.append({'kind': 'removed_call', 'count': len(old_calls) - len(new_calls)})
        return details
