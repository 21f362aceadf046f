import time
import asyncio
import logging
from enum import Enum
from dataclasses import dataclass, asdict
from typing import Dict, List, Any
from collections import defaultdict
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

logger = logging.getLogger(__name__)


class ScreenflowError(Exception):
    """Base class for all screenflow errors"""


class CycleError(ScreenflowError):
    """Reparenting would make a node its own ancestor"""


class NodeNotFoundError(ScreenflowError):
    """A flow graph node id does not exist"""


class DuplicateNodeError(ScreenflowError):
    """A flow graph node id is already in use"""


class AmbiguousFlowError(ScreenflowError):
    """A flow graph has more than one outbound edge where a single path was required"""


class FlowDataError(ScreenflowError):
    """A section's flow data is missing or unusable"""


class SessionError(ScreenflowError):
    """An operation needs a capture session state it is not in"""


class StorageError(ScreenflowError):
    """Reading or writing the section store failed"""


class BrowserDisconnectedError(ScreenflowError):
    """The controlled browser went away; the session cannot continue"""


class ErrorType(Enum):
    """Classification of errors met while capturing or replaying"""
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NAVIGATION_ERROR = "navigation_error"
    SELECTOR_TIMEOUT = "selector_timeout"
    URL_MISMATCH = "url_mismatch"
    BROWSER_DISCONNECTED = "browser_disconnected"
    STORAGE_ERROR = "storage_error"
    SERIALIZATION_ERROR = "serialization_error"
    COMPARISON_ERROR = "comparison_error"
    UNKNOWN_ERROR = "unknown_error"


class ErrorSeverity(Enum):
    """How far an error propagates"""
    SOFT = "soft"              # log, skip the item, continue
    CHECKPOINT = "checkpoint"  # pause for an operator decision
    FATAL = "fatal"            # abort the session


STAGE_ERROR_TYPES = {
    'navigate': ErrorType.NAVIGATION_ERROR,
    'replay': ErrorType.NAVIGATION_ERROR,
    'capture': ErrorType.SERIALIZATION_ERROR,
    'compare': ErrorType.COMPARISON_ERROR,
    'save': ErrorType.STORAGE_ERROR,
}


@dataclass
class ErrorInfo:
    """Information about an error occurrence"""
    screen_id: str
    stage: str
    error_type: ErrorType
    severity: ErrorSeverity
    message: str
    timestamp: float
    attempt: int = 1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['error_type'] = self.error_type.value
        data['severity'] = self.severity.value
        return data


class ErrorHandler:
    """Classifies errors and keeps a per-screen history for reporting

    Nothing here retries: a repeat attempt only happens when an operator
    asks for it at a checkpoint.
    """

    def __init__(self):
        self.error_history: List[ErrorInfo] = []
        self.screen_errors: Dict[str, List[ErrorInfo]] = defaultdict(list)

    def classify_error(self, error: Exception, stage: str = None) -> ErrorType:
        """Classify an error into an ErrorType, using the stage it happened in as a hint"""
        if isinstance(error, BrowserDisconnectedError):
            return ErrorType.BROWSER_DISCONNECTED
        if isinstance(error, StorageError):
            return ErrorType.STORAGE_ERROR
        if isinstance(error, (PlaywrightTimeoutError, asyncio.TimeoutError)):
            if stage == 'navigate':
                return ErrorType.NAVIGATION_TIMEOUT
            return ErrorType.SELECTOR_TIMEOUT

        message = str(error).lower()
        if 'target closed' in message or 'browser has been closed' in message:
            return ErrorType.BROWSER_DISCONNECTED
        if 'net::' in message or 'navigation' in message:
            return ErrorType.NAVIGATION_ERROR

        return STAGE_ERROR_TYPES.get(stage, ErrorType.UNKNOWN_ERROR)

    @staticmethod
    def severity_for(error_type: ErrorType) -> ErrorSeverity:
        if error_type == ErrorType.BROWSER_DISCONNECTED:
            return ErrorSeverity.FATAL
        if error_type == ErrorType.SELECTOR_TIMEOUT:
            return ErrorSeverity.SOFT
        return ErrorSeverity.CHECKPOINT

    def record(self, screen_id: str, stage: str, error: Exception, attempt: int = 1) -> ErrorInfo:
        """Classify and remember an error raised while handling a screen"""
        error_type = self.classify_error(error, stage)
        info = ErrorInfo(
            screen_id=screen_id,
            stage=stage,
            error_type=error_type,
            severity=self.severity_for(error_type),
            message=str(error) or error.__class__.__name__,
            timestamp=time.time(),
            attempt=attempt,
        )
        self.error_history.append(info)
        self.screen_errors[screen_id].append(info)

        log_level = logging.ERROR if info.severity == ErrorSeverity.FATAL else logging.WARNING
        logger.log(log_level, f"[{screen_id}] {stage} failed (attempt {attempt}): "
                              f"{error_type.value} - {info.message}")
        return info

    def record_mismatch(self, screen_id: str, expected: str, actual: str) -> ErrorInfo:
        """Remember a live URL that did not match the captured one"""
        info = ErrorInfo(
            screen_id=screen_id,
            stage='navigate',
            error_type=ErrorType.URL_MISMATCH,
            severity=ErrorSeverity.CHECKPOINT,
            message=f"URL mismatch: expected {expected}, got {actual}",
            timestamp=time.time(),
        )
        self.error_history.append(info)
        self.screen_errors[screen_id].append(info)
        logger.warning(f"[{screen_id}] {info.message}")
        return info

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors encountered"""
        if not self.error_history:
            return {"total_errors": 0}

        error_counts = defaultdict(int)
        severity_counts = defaultdict(int)
        for error in self.error_history:
            error_counts[error.error_type.value] += 1
            severity_counts[error.severity.value] += 1

        return {
            "total_errors": len(self.error_history),
            "screens_with_errors": len(self.screen_errors),
            "error_types": dict(error_counts),
            "severities": dict(severity_counts),
        }
