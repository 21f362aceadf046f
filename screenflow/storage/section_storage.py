import json
import shutil
import asyncio
import logging
import aiofiles
import aiofiles.os
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from .artifact_type import ArtifactType
from .screen_bundle import ScreenBundle, screen_stats
from ..actions.action_event import ActionEvent
from ..dom.dom_serializer import load_dom_document
from ..error_handler import FlowDataError, StorageError
from ..flow.flow_graph import FlowGraph
from ..network.api_exchange import ApiExchange

logger = logging.getLogger(__name__)

SECTIONS_DIR = 'sections'
TEST_RUNS_DIR = 'test-runs'


def timestamp_id(moment: datetime = None) -> str:
    """ISO timestamp made safe for directory names"""
    moment = moment or datetime.now()
    return moment.isoformat(timespec='milliseconds').replace(':', '-').replace('.', '-')


class SectionStorage:
    """File-based store for sections, screen bundles and test runs

    Structure:
    - <base>/<project>/auth.json
    - <base>/<project>/sections/<section_id>/flow.json, session.json
    - <base>/<project>/sections/<section_id>/<nested path>/screen.html, dom.json, ...
    - <base>/<project>/test-runs/<test_run_id>/report.json, report.html, <screen_id>/...
    """

    def __init__(self, base_path='screenflow_data'):
        self.base_path = Path(base_path)
        self.setup_directories()

    def setup_directories(self):
        self.base_path.mkdir(parents=True, exist_ok=True)

    def project_path(self, project: str) -> Path:
        return self.base_path / project

    def section_path(self, project: str, section_id: str) -> Path:
        return self.project_path(project) / SECTIONS_DIR / section_id

    @staticmethod
    def screen_dir(section_path: Path, nested_path: str) -> Path:
        return Path(section_path).joinpath(*nested_path.split('/'))

    def test_run_path(self, project: str, test_run_id: str) -> Path:
        return self.project_path(project) / TEST_RUNS_DIR / test_run_id

    async def ensure_dir(self, path: Path) -> Path:
        await aiofiles.os.makedirs(path, exist_ok=True)
        return Path(path)

    async def path_exists(self, path: Path) -> bool:
        return await aiofiles.os.path.exists(path)

    async def read_text(self, path: Path, default: str = None) -> Optional[str]:
        if not await self.path_exists(path):
            return default
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            return await f.read()

    async def write_text(self, path: Path, content: str):
        try:
            await self.ensure_dir(Path(path).parent)
            async with aiofiles.open(path, 'w', encoding='utf-8') as f:
                await f.write(content)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e

    async def read_json(self, path: Path, default: Any = None) -> Any:
        """Read a JSON file; missing or unreadable files give ``default``"""
        try:
            content = await self.read_text(path)
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return default
        if content is None:
            return default
        try:
            return json.loads(content)
        except ValueError as e:
            logger.warning(f"Invalid JSON in {path}: {e}")
            return default

    async def write_json(self, path: Path, data: Any):
        await self.write_text(path, json.dumps(data, indent=2, ensure_ascii=False, default=str))

    async def append_lines(self, path: Path, lines: List[str]):
        if not lines:
            return
        try:
            await self.ensure_dir(Path(path).parent)
            async with aiofiles.open(path, 'a', encoding='utf-8') as f:
                await f.write(''.join(line + '\n' for line in lines))
        except OSError as e:
            raise StorageError(f"Could not append to {path}: {e}") from e

    async def remove_file(self, path: Path):
        if await self.path_exists(path):
            await aiofiles.os.remove(path)

    # Sections

    async def create_section(self, project: str) -> Tuple[str, Path]:
        base_id = timestamp_id()
        section_id = base_id
        counter = 2
        while await self.path_exists(self.section_path(project, section_id)):
            section_id = f"{base_id}-{counter}"
            counter += 1
        path = await self.ensure_dir(self.section_path(project, section_id))
        logger.info(f"Created section {project}/{section_id}")
        return section_id, path

    async def list_sections(self, project: str) -> List[str]:
        sections_root = self.project_path(project) / SECTIONS_DIR
        if not await self.path_exists(sections_root):
            return []
        return sorted(await aiofiles.os.listdir(sections_root), reverse=True)

    async def save_flow(self, section_path: Path, graph: FlowGraph):
        """Persist flow.json; failures propagate as StorageError"""
        await self.write_json(Path(section_path) / ArtifactType.FLOW.value, graph.to_dict())

    async def load_flow(self, section_path: Path) -> FlowGraph:
        data = await self.read_json(Path(section_path) / ArtifactType.FLOW.value)
        if not data:
            raise FlowDataError(f"No flow data in {section_path}")
        return FlowGraph.from_dict(data)

    async def write_session(self, section_path: Path, session_data: Dict[str, Any]):
        await self.write_json(Path(section_path) / ArtifactType.SESSION.value, session_data)

    async def load_auth(self, project: str) -> Optional[Dict[str, Any]]:
        return await self.read_json(self.project_path(project) / ArtifactType.AUTH.value)

    # Screens

    async def save_screen_bundle(self, section_path: Path, bundle: ScreenBundle) -> Path:
        """Write every file of a screen bundle under its nested path"""
        screen_dir = await self.ensure_dir(self.screen_dir(section_path, bundle.nested_path))
        bundle.refresh_stats()

        await self.write_text(screen_dir / ArtifactType.SCREEN_HTML.value, bundle.html or '')
        await self.write_json(screen_dir / ArtifactType.DOM_TREE.value, bundle.dom_document())
        await self.write_json(screen_dir / ArtifactType.ACTIONS.value,
                              [action.to_dict() for action in bundle.actions])
        await self.write_json(screen_dir / ArtifactType.APIS.value, [api.to_dict() for api in bundle.apis])
        await self.write_json(screen_dir / ArtifactType.META.value, bundle.meta)

        logger.debug(f"Saved screen bundle {bundle.nested_path} ({len(bundle.actions)} actions, "
                     f"{len(bundle.apis)} APIs)")
        return screen_dir

    async def load_screen_bundle(self, section_path: Path, nested_path: str) -> ScreenBundle:
        """Load a screen bundle; missing files give empty fields"""
        screen_dir = self.screen_dir(section_path, nested_path)
        dom_data = await self.read_json(screen_dir / ArtifactType.DOM_TREE.value, {})

        bundle = ScreenBundle(
            nested_path=nested_path,
            html=await self.read_text(screen_dir / ArtifactType.SCREEN_HTML.value, ''),
            dom=load_dom_document(dom_data),
            dom_meta={key: value for key, value in (dom_data or {}).items() if key != 'body'},
            meta=await self.read_json(screen_dir / ArtifactType.META.value, {}),
            actions=[ActionEvent.from_dict(item) for item in
                     await self.read_json(screen_dir / ArtifactType.ACTIONS.value, [])],
            apis=[ApiExchange.from_dict(item) for item in
                  await self.read_json(screen_dir / ArtifactType.APIS.value, [])],
        )
        return bundle

    async def load_response_index(self, section_path: Path, graph: FlowGraph) -> Dict[str, Any]:
        """Response bodies of every stored exchange in a section, by exchange id

        Dedup markers on one screen can point at an exchange stored on another.
        """
        index = {}
        for node in graph.screens:
            stored = await self.read_json(self.screen_dir(section_path, node.nested_path) / ArtifactType.APIS.value, [])
            for item in stored:
                if not item.get('deduplicated') and item.get('id') is not None:
                    index[str(item['id'])] = item.get('responseBody')
        return index

    async def append_apis(self, section_path: Path, nested_path: str, apis: List[ApiExchange]) -> int:
        """Append exchanges to a stored screen and refresh its counters

        Returns:
            Total number of exchanges now stored for the screen
        """
        screen_dir = self.screen_dir(section_path, nested_path)
        apis_file = screen_dir / ArtifactType.APIS.value
        stored = await self.read_json(apis_file, [])
        stored.extend(api.to_dict() for api in apis)
        await self.write_json(apis_file, stored)

        meta_file = screen_dir / ArtifactType.META.value
        meta = await self.read_json(meta_file, {})
        stats = meta.get('stats') or {}
        all_apis = [ApiExchange.from_dict(item) for item in stored]
        stats['apis'] = len(stored)
        stats['apiEndpoints'] = screen_stats([], all_apis)['apiEndpoints']
        meta['stats'] = stats
        await self.write_json(meta_file, meta)
        return len(stored)

    async def move_screen_dir(self, section_path: Path, old_nested: str, new_nested: str):
        """Move a screen directory (with everything below it) to a new nested path"""
        source = self.screen_dir(section_path, old_nested)
        target = self.screen_dir(section_path, new_nested)
        if not await self.path_exists(source):
            logger.warning(f"Nothing to move at {source}")
            return
        try:
            await aiofiles.os.renames(source, target)
        except OSError as e:
            raise StorageError(f"Could not move {old_nested} to {new_nested}: {e}") from e

    async def delete_screen_dir(self, section_path: Path, nested_path: str) -> bool:
        target = self.screen_dir(section_path, nested_path)
        if not await self.path_exists(target):
            return False
        await asyncio.to_thread(shutil.rmtree, target)
        return True

    # Test runs

    async def save_report(self, run_path: Path, report: Dict[str, Any], html: str = None):
        await self.write_json(Path(run_path) / ArtifactType.REPORT_JSON.value, report)
        if html is not None:
            await self.write_text(Path(run_path) / ArtifactType.REPORT_HTML.value, html)

    async def list_test_runs(self, project: str, section_id: str = None) -> List[Dict[str, Any]]:
        """Summaries of stored test runs, newest first"""
        runs_root = self.project_path(project) / TEST_RUNS_DIR
        if not await self.path_exists(runs_root):
            return []

        history = []
        for run_id in await aiofiles.os.listdir(runs_root):
            report = await self.read_json(runs_root / run_id / ArtifactType.REPORT_JSON.value)
            if not report:
                continue
            if section_id and report.get('sectionId') != section_id:
                continue
            summary = report.get('summary', {})
            history.append({
                'testRunId': report.get('testRunId', run_id),
                'sectionId': report.get('sectionId'),
                'timestamp': report.get('timestamp'),
                'duration': report.get('duration'),
                'overallStatus': summary.get('overallStatus'),
                'total': summary.get('total', 0),
                'passed': summary.get('passed', 0),
                'failed': summary.get('failed', 0),
                'warnings': summary.get('warnings', 0),
            })

        history.sort(key=lambda item: item.get('timestamp') or '', reverse=True)
        return history

    async def delete_test_run(self, project: str, test_run_id: str) -> bool:
        run_path = self.test_run_path(project, test_run_id)
        if not await self.path_exists(run_path):
            return False
        await asyncio.to_thread(shutil.rmtree, run_path)
        logger.info(f"Deleted test run {project}/{test_run_id}")
        return True
