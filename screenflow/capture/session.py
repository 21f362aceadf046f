import time
from enum import Enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from ..actions.action_event import ActionEvent
from ..flow.flow_graph import FlowGraph, ROOT_ID
from ..network.api_exchange import ApiExchange


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CLOSING = "closing"


@dataclass
class FrozenState:
    """Page metadata, actions and APIs held while the operator names a screen"""
    meta: Dict[str, Any]
    actions: List[ActionEvent]
    apis: List[ApiExchange]
    remaining_apis: List[ApiExchange]
    url_path: str
    frozen_at: float = field(default_factory=time.time)


@dataclass
class SessionContext:
    """Authoritative state of one capture session"""
    project: str
    section_id: str
    section_path: Path
    start_url: str
    device_profile: str
    flow_graph: FlowGraph
    start_time: float = field(default_factory=time.time)
    captures: List[Dict[str, Any]] = field(default_factory=list)
    last_capture_id: str = ROOT_ID
    last_capture_url: Optional[str] = None
    frozen: Optional[FrozenState] = None

    @property
    def domain(self) -> str:
        return urlparse(self.start_url).netloc

    def to_session_dict(self) -> Dict[str, Any]:
        return {
            'project': self.project,
            'sectionId': self.section_id,
            'startUrl': self.start_url,
            'domain': self.domain,
            'deviceProfile': self.device_profile,
            'startTime': int(self.start_time * 1000),
            'endTime': int(time.time() * 1000),
            'screens': len(self.captures),
            'captures': self.captures,
        }
