"""
API traffic tracking, filtering and response deduplication
"""

from .api_exchange import ApiExchange, ExchangeState
from .tracker_filter import TrackerFilter
from .response_deduplicator import ResponseDeduplicator
from .api_tracker import ApiTracker

__all__ = [
    'ApiExchange',
    'ExchangeState',
    'TrackerFilter',
    'ResponseDeduplicator',
    'ApiTracker',
]
