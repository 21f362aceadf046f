import logging
from typing import Any, Dict, List
from ..error_handler import FlowDataError
from ..storage.artifact_type import ArtifactType
from ..storage.section_storage import SectionStorage

logger = logging.getLogger(__name__)


class SectionEditor:
    """Edits the flow of a stored section, keeping the directory tree in step"""

    def __init__(self, storage: SectionStorage):
        self.storage = storage

    async def reparent_screen(self, project: str, section_id: str, node_id: str,
                              new_parent_id: str) -> Dict[str, Any]:
        """Move a screen and its subtree under another screen

        The graph is changed first (a cycle raises before anything moves on
        disk), then the screen directory is moved to its new nested path and
        the moved screens' meta.json files are updated.
        """
        section_path = self.storage.section_path(project, section_id)
        graph = await self.storage.load_flow(section_path)
        old_nested = graph.get_node(node_id).nested_path

        moved = graph.reparent(node_id, new_parent_id)
        if not moved:
            return {'id': node_id, 'parentId': new_parent_id, 'moved': []}

        await self.storage.move_screen_dir(section_path, old_nested, graph.get_node(node_id).nested_path)
        for moved_id, (_, new_path) in moved.items():
            meta_file = self.storage.screen_dir(section_path, new_path) / ArtifactType.META.value
            meta = await self.storage.read_json(meta_file)
            if meta is None:
                continue
            meta['nestedPath'] = new_path
            if moved_id == node_id:
                meta['parentId'] = new_parent_id
            await self.storage.write_json(meta_file, meta)

        await self.storage.save_flow(section_path, graph)
        logger.info(f"Moved '{node_id}' under '{new_parent_id}' in {project}/{section_id}")
        return {
            'id': node_id,
            'parentId': new_parent_id,
            'moved': [{'id': moved_id, 'from': old, 'to': new} for moved_id, (old, new) in moved.items()],
        }

    async def delete_screen(self, project: str, section_id: str, node_id: str) -> List[str]:
        """Delete a screen with everything captured below it

        Returns:
            Ids of the removed screens
        """
        section_path = self.storage.section_path(project, section_id)
        graph = await self.storage.load_flow(section_path)
        nested_path = graph.get_node(node_id).nested_path
        if not nested_path:
            raise FlowDataError(f"Screen '{node_id}' has no directory")

        removed = graph.remove_node(node_id)
        await self.storage.delete_screen_dir(section_path, nested_path)
        await self.storage.save_flow(section_path, graph)

        removed_ids = [node.id for node in removed]
        logger.info(f"Deleted {len(removed_ids)} screens from {project}/{section_id}: {removed_ids}")
        return removed_ids
