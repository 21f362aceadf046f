from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse


class ExchangeState(Enum):
    """Lifecycle of one tracked request"""
    SENT = "sent"
    RESPONDED = "responded"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class ApiExchange:
    """A request/response pair observed on the page"""
    id: str
    method: str
    url: str
    origin_path: str = '/'
    origin_url: str = ''
    resource_type: str = ''
    req_headers: Dict[str, str] = field(default_factory=dict)
    request_body: Any = None
    status: Optional[int] = None
    status_text: str = ''
    mime_type: str = ''
    res_headers: Dict[str, str] = field(default_factory=dict)
    response_body: Any = None
    time: int = 0
    duration: Optional[int] = None
    error: Optional[str] = None
    state: ExchangeState = ExchangeState.SENT
    screen_id: Optional[str] = None
    has_post_data: bool = False
    deduplicated: bool = False
    dedup_hash: Optional[str] = None
    dedup_of: Optional[str] = None
    dedup_occurrence: int = 0

    @property
    def path(self) -> str:
        return urlparse(self.url).path or '/'

    @property
    def endpoint(self) -> str:
        """``METHOD /path`` key, ignoring host and query"""
        return f"{self.method.upper()} {self.path}"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'method': self.method,
            'url': self.url,
            'originPath': self.origin_path,
            'originUrl': self.origin_url,
            'type': self.resource_type,
            'reqHeaders': self.req_headers,
            'requestBody': self.request_body,
            'status': self.status,
            'statusText': self.status_text,
            'mimeType': self.mime_type,
            'resHeaders': self.res_headers,
            'responseBody': self.response_body,
            'time': self.time,
            'duration': self.duration,
        }
        if self.error:
            data['error'] = self.error
        if self.screen_id:
            data['screenId'] = self.screen_id
        if self.deduplicated:
            data['deduplicated'] = True
            data['dedupHash'] = self.dedup_hash
            data['dedupOf'] = self.dedup_of
            data['dedupOccurrence'] = self.dedup_occurrence
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApiExchange':
        failed = bool(data.get('error'))
        return cls(
            id=str(data.get('id', '')),
            method=data.get('method', 'GET'),
            url=data.get('url', ''),
            origin_path=data.get('originPath') or '/',
            origin_url=data.get('originUrl', ''),
            resource_type=data.get('type', ''),
            req_headers=data.get('reqHeaders') or {},
            request_body=data.get('requestBody'),
            status=data.get('status'),
            status_text=data.get('statusText', ''),
            mime_type=data.get('mimeType', ''),
            res_headers=data.get('resHeaders') or {},
            response_body=data.get('responseBody'),
            time=data.get('time', 0),
            duration=data.get('duration'),
            error=data.get('error'),
            state=ExchangeState.FAILED if failed else ExchangeState.FINISHED,
            screen_id=data.get('screenId'),
            deduplicated=bool(data.get('deduplicated', False)),
            dedup_hash=data.get('dedupHash'),
            dedup_of=data.get('dedupOf'),
            dedup_occurrence=data.get('dedupOccurrence', 0),
        )
