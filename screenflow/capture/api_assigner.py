import logging
from pathlib import Path
from typing import Dict, List
from ..error_handler import NodeNotFoundError, StorageError
from ..flow.flow_graph import FlowGraph
from ..network.api_exchange import ApiExchange

logger = logging.getLogger(__name__)


class RetroactiveAssigner:
    """Appends late API exchanges to screens that were already captured

    Exchanges left over after a freeze are grouped by the page path they
    were issued from. A group whose path belongs to a captured screen is
    appended to that screen's stored ``apis.json``; the rest stay pending.
    """

    def __init__(self, storage):
        self.storage = storage
        # url path -> id of the latest screen captured there
        self.captured_paths: Dict[str, str] = {}
        self.stats = {'assigned': 0, 'groups_written': 0, 'write_failures': 0}

    def register(self, url_path: str, screen_id: str):
        self.captured_paths[url_path] = screen_id

    def reset(self):
        self.captured_paths = {}

    @staticmethod
    def group_by_origin(exchanges: List[ApiExchange]) -> Dict[str, List[ApiExchange]]:
        groups: Dict[str, List[ApiExchange]] = {}
        for exchange in exchanges:
            groups.setdefault(exchange.origin_path, []).append(exchange)
        return groups

    async def assign(self, section_path: Path, remaining: List[ApiExchange],
                     graph: FlowGraph) -> List[ApiExchange]:
        """Write matching groups to their screens

        Returns:
            Exchanges that could not be assigned and should stay pending
        """
        unmatched = []
        for origin_path, group in self.group_by_origin(remaining).items():
            screen_id = self.captured_paths.get(origin_path)
            if screen_id is None:
                unmatched.extend(group)
                continue

            try:
                node = graph.get_node(screen_id)
                total = await self.storage.append_apis(section_path, node.nested_path, group)
            except (NodeNotFoundError, StorageError) as e:
                logger.warning(f"Could not assign {len(group)} APIs from {origin_path} to '{screen_id}': {e}")
                self.stats['write_failures'] += 1
                unmatched.extend(group)
                continue

            for exchange in group:
                exchange.screen_id = screen_id
            graph.update_edge_counts(screen_id, api_count=total)
            self.stats['assigned'] += len(group)
            self.stats['groups_written'] += 1
            logger.info(f"Retroactively assigned {len(group)} APIs to '{screen_id}' ({origin_path})")

        return unmatched
