import logging
from typing import Any, Dict, Tuple
from .comparison_engine import ComparisonEngine, ScreenComparison
from ..dom.dom_serializer import DomSerializer
from ..storage.screen_bundle import ScreenBundle

logger = logging.getLogger(__name__)


class OfflineComparer:
    """Compares two stored screens, from any two sections, without a browser

    When ``from_html`` is set, or either screen has no stored DOM tree, both
    trees are rebuilt from their saved HTML so the two sides carry the same
    kind of information.
    """

    def __init__(self, storage, engine: ComparisonEngine = None, serializer: DomSerializer = None):
        self.storage = storage
        self.engine = engine or ComparisonEngine()
        self.serializer = serializer or DomSerializer()

    async def load_screen(self, project: str, section_id: str,
                          screen_id: str) -> Tuple[ScreenBundle, Dict[str, Any]]:
        section_path = self.storage.section_path(project, section_id)
        graph = await self.storage.load_flow(section_path)
        node = graph.get_node(screen_id)
        bundle = await self.storage.load_screen_bundle(section_path, node.nested_path)
        return bundle, await self.storage.load_response_index(section_path, graph)

    async def compare_screens(self, project: str, section_a: str, screen_a: str, section_b: str,
                              screen_b: str = None, from_html: bool = False) -> ScreenComparison:
        original, original_bodies = await self.load_screen(project, section_a, screen_a)
        other, other_bodies = await self.load_screen(project, section_b, screen_b or screen_a)
        if from_html or original.dom is None or other.dom is None:
            logger.info("Comparing DOM trees rebuilt from saved HTML")
            original.dom = self.serializer.serialize_html(original.html)
            other.dom = self.serializer.serialize_html(other.html)
        return self.engine.compare_bundles(original, other, original_bodies, other_bodies)
