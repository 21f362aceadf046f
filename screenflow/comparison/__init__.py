"""
DOM and API comparison
"""

from .dom_comparator import DomComparator, DomComparison, DomChange, categorize_property
from .api_comparator import ApiComparator, ApiComparison, ApiChange, diff_shapes
from .comparison_engine import ComparisonEngine, ScreenComparison
from .offline import OfflineComparer

__all__ = [
    'DomComparator',
    'DomComparison',
    'DomChange',
    'categorize_property',
    'ApiComparator',
    'ApiComparison',
    'ApiChange',
    'diff_shapes',
    'ComparisonEngine',
    'ScreenComparison',
    'OfflineComparer',
]
