import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from .api_comparator import ApiComparator, ApiComparison
from .dom_comparator import DomComparator, DomComparison
from ..dom.dom_node import DomNode
from ..network.api_exchange import ApiExchange
from ..storage.screen_bundle import ScreenBundle

logger = logging.getLogger(__name__)


@dataclass
class ScreenComparison:
    """DOM and API comparison of one screen"""
    ui: DomComparison
    api: ApiComparison

    @property
    def overall_score(self) -> float:
        return round((self.ui.similarity_score + self.api.similarity_score) / 2, 2)

    @property
    def has_changes(self) -> bool:
        return self.ui.has_changes or self.api.has_changes

    @property
    def style_change_count(self) -> int:
        return len(self.ui.style_changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overallScore': self.overall_score,
            'hasChanges': self.has_changes,
            'ui': self.ui.to_dict(),
            'api': self.api.to_dict(),
        }


class ComparisonEngine:
    """Compares original and live screen state"""

    def __init__(self, dom_comparator: DomComparator = None, api_comparator: ApiComparator = None):
        self.dom_comparator = dom_comparator or DomComparator()
        self.api_comparator = api_comparator or ApiComparator()

    def compare_dom(self, original: Optional[DomNode], live: Optional[DomNode]) -> DomComparison:
        return self.dom_comparator.compare(original, live)

    def compare_api(self, original: List[ApiExchange], live: List[ApiExchange],
                    original_bodies: Dict[str, Any] = None, live_bodies: Dict[str, Any] = None) -> ApiComparison:
        return self.api_comparator.compare(original, live, original_bodies, live_bodies)

    def compare(self, original_dom: Optional[DomNode], live_dom: Optional[DomNode],
                original_apis: List[ApiExchange], live_apis: List[ApiExchange],
                original_bodies: Dict[str, Any] = None, live_bodies: Dict[str, Any] = None) -> ScreenComparison:
        comparison = ScreenComparison(
            ui=self.compare_dom(original_dom, live_dom),
            api=self.compare_api(original_apis, live_apis, original_bodies, live_bodies),
        )
        logger.info(f"Compared screen: {comparison.overall_score}% - "
                    f"{comparison.ui.summary}; {comparison.api.summary}")
        return comparison

    def compare_bundles(self, original: ScreenBundle, live: ScreenBundle,
                        original_bodies: Dict[str, Any] = None, live_bodies: Dict[str, Any] = None) -> ScreenComparison:
        """Compare two screen bundles; the body indexes resolve cross-screen dedup markers"""
        return self.compare(original.dom, live.dom, original.apis, live.apis, original_bodies, live_bodies)
