import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from .screen_node import ScreenNode, ScreenType, FlowEdge
from ..error_handler import (
    AmbiguousFlowError,
    CycleError,
    DuplicateNodeError,
    FlowDataError,
    NodeNotFoundError,
)

logger = logging.getLogger(__name__)

ROOT_ID = 'start'


@dataclass
class WalkStep:
    """A screen reached by the ordered walk and the edge that led to it"""
    node: ScreenNode
    edge: FlowEdge
    index: int


@dataclass
class FlowWalk:
    """Result of walking a flow graph along its primary path"""
    steps: List[WalkStep] = field(default_factory=list)
    branch_points: List[str] = field(default_factory=list)
    unvisited: List[str] = field(default_factory=list)

    @property
    def is_linear(self) -> bool:
        return not self.branch_points and not self.unvisited


class FlowGraph:
    """Tree of captured screens rooted at a synthetic start node

    Every screen has exactly one inbound edge. Nested paths are derived from
    the parent chain and recomputed whenever the tree shape changes.
    """

    def __init__(self, start_path: str = '/', domain: str = '', device_profile: str = 'desktop'):
        self.domain = domain
        self.device_profile = device_profile
        self.nodes: Dict[str, ScreenNode] = {
            ROOT_ID: ScreenNode(id=ROOT_ID, name='Start', type=ScreenType.START,
                                url_path=start_path, nested_path=ROOT_ID)
        }
        self.edges: List[FlowEdge] = []

    @property
    def root(self) -> ScreenNode:
        return self.nodes[ROOT_ID]

    @property
    def screens(self) -> List[ScreenNode]:
        """Every node except the start node, in insertion order"""
        return [node for node_id, node in self.nodes.items() if node_id != ROOT_ID]

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def get_node(self, node_id: str) -> ScreenNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(f"Screen '{node_id}' is not in the flow graph") from None

    def inbound_edge(self, node_id: str) -> Optional[FlowEdge]:
        for edge in self.edges:
            if edge.target == node_id:
                return edge
        return None

    def parent_of(self, node_id: str) -> Optional[str]:
        edge = self.inbound_edge(node_id)
        return edge.source if edge else None

    def children_of(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.edges if edge.source == node_id]

    def descendants_of(self, node_id: str) -> List[str]:
        """All nodes below ``node_id``, depth-first, in edge order"""
        result = []
        stack = list(reversed(self.children_of(node_id)))
        while stack:
            current = stack.pop()
            if current in result:
                continue
            result.append(current)
            stack.extend(reversed(self.children_of(current)))
        return result

    def allocate_id(self, name: str) -> str:
        """Derive a unique, path-safe node id from a screen name"""
        base = re.sub(r'[^a-z0-9]+', '_', (name or '').lower()).strip('_') or 'screen'
        if base == ROOT_ID:
            base = 'start_screen'
        candidate = base
        counter = 2
        while candidate in self.nodes:
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    def add_node(self, node: ScreenNode, parent_id: str = ROOT_ID, label: str = '',
                 action_count: int = 0, api_count: int = 0) -> FlowEdge:
        """Append a screen under ``parent_id`` with a single inbound edge

        Args:
            node: Screen to add; its id must not be in use
            parent_id: Existing node the screen was reached from
            label: Text of the click that led to the screen
            action_count: Number of recorded actions on the edge
            api_count: Number of API exchanges assigned to the screen

        Returns:
            The new inbound edge
        """
        if node.id in self.nodes:
            raise DuplicateNodeError(f"Screen id '{node.id}' already exists")
        self.get_node(parent_id)

        node.dom_order = len(self.nodes) - 1
        self.nodes[node.id] = node
        edge = FlowEdge(parent_id, node.id, label, action_count, api_count)
        self.edges.append(edge)
        node.nested_path = self.build_nested_path(node.id)
        return edge

    def build_nested_path(self, node_id: str) -> str:
        """Join the ancestor chain from the root down to ``node_id`` with '/'"""
        self.get_node(node_id)
        chain = []
        current = node_id
        seen = set()
        while current is not None:
            if current in seen:
                raise CycleError(f"Cycle detected at '{current}' while resolving '{node_id}'")
            seen.add(current)
            chain.append(current)
            current = self.parent_of(current)
        return '/'.join(reversed(chain))

    def reparent(self, node_id: str, new_parent_id: str) -> Dict[str, Tuple[str, str]]:
        """Move a screen (and its subtree) under a new parent

        Returns:
            Map of node id -> (old nested path, new nested path) for every
            node whose nested path changed

        Raises:
            CycleError: the new parent is the node itself or one of its
                descendants; the graph is left unchanged
        """
        if node_id == ROOT_ID:
            raise CycleError("The start node cannot be reparented")
        self.get_node(node_id)
        self.get_node(new_parent_id)

        if new_parent_id == node_id or new_parent_id in self.descendants_of(node_id):
            raise CycleError(f"Cannot move '{node_id}' under its own descendant '{new_parent_id}'")

        old_edge = self.inbound_edge(node_id)
        if old_edge and old_edge.source == new_parent_id:
            return {}

        affected = [node_id] + self.descendants_of(node_id)
        old_paths = {affected_id: self.nodes[affected_id].nested_path for affected_id in affected}

        if old_edge:
            index = self.edges.index(old_edge)
            self.edges[index] = FlowEdge(new_parent_id, node_id, old_edge.label,
                                         old_edge.action_count, old_edge.api_count)
        else:
            self.edges.append(FlowEdge(new_parent_id, node_id))

        for affected_id in affected:
            self.nodes[affected_id].nested_path = self.build_nested_path(affected_id)

        logger.info(f"Reparented '{node_id}' under '{new_parent_id}' ({len(affected)} screens moved)")
        return {
            affected_id: (old_paths[affected_id], self.nodes[affected_id].nested_path)
            for affected_id in affected
            if old_paths[affected_id] != self.nodes[affected_id].nested_path
        }

    def remove_node(self, node_id: str) -> List[ScreenNode]:
        """Remove a screen together with its subtree and all edges touching them"""
        if node_id == ROOT_ID:
            raise FlowDataError("The start node cannot be deleted")
        self.get_node(node_id)

        doomed = [node_id] + self.descendants_of(node_id)
        removed = [self.nodes.pop(doomed_id) for doomed_id in doomed]
        doomed_set = set(doomed)
        self.edges = [edge for edge in self.edges
                      if edge.source not in doomed_set and edge.target not in doomed_set]

        for order, node in enumerate(self.screens):
            node.dom_order = order
        return removed

    def update_edge_counts(self, node_id: str, action_count: int = None, api_count: int = None):
        edge = self.inbound_edge(node_id)
        if edge is None:
            return
        if action_count is not None:
            edge.action_count = action_count
        if api_count is not None:
            edge.api_count = api_count

    def ordered_walk(self, strict: bool = False) -> FlowWalk:
        """Screens in traversal order from start, following the first outbound edge

        Nodes with more than one outbound edge are reported in
        ``branch_points``; the branches not taken are listed in
        ``unvisited``. With ``strict=True`` a branch raises instead.
        """
        walk = FlowWalk()
        visited = {ROOT_ID}
        current = ROOT_ID

        while True:
            outbound = [edge for edge in self.edges if edge.source == current]
            if len(outbound) > 1:
                if strict:
                    raise AmbiguousFlowError(
                        f"Screen '{current}' has {len(outbound)} outbound transitions"
                    )
                walk.branch_points.append(current)
                logger.warning(f"Flow branches at '{current}' into "
                               f"{[edge.target for edge in outbound]}; only the first is walked")

            next_edge = next((edge for edge in outbound if edge.target not in visited), None)
            if next_edge is None:
                break

            visited.add(next_edge.target)
            walk.steps.append(WalkStep(self.nodes[next_edge.target], next_edge, len(walk.steps)))
            current = next_edge.target

        walk.unvisited = [node.id for node in self.screens if node.id not in visited]
        return walk

    def to_dict(self) -> Dict:
        return {
            'domain': self.domain,
            'deviceProfile': self.device_profile,
            'nodes': [node.to_dict() for node in self.nodes.values()],
            'edges': [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'FlowGraph':
        if not data or not data.get('nodes'):
            raise FlowDataError("Flow data has no nodes")

        graph = cls(domain=data.get('domain', ''), device_profile=data.get('deviceProfile', 'desktop'))
        graph.nodes = {}
        for node_data in data['nodes']:
            node = ScreenNode.from_dict(node_data)
            graph.nodes[node.id] = node
        if ROOT_ID not in graph.nodes:
            graph.nodes = {ROOT_ID: ScreenNode(id=ROOT_ID, name='Start', type=ScreenType.START,
                                               nested_path=ROOT_ID), **graph.nodes}

        graph.edges = [FlowEdge.from_dict(edge) for edge in data.get('edges', [])
                       if edge.get('from') in graph.nodes and edge.get('to') in graph.nodes]
        for node_id, node in graph.nodes.items():
            node.nested_path = graph.build_nested_path(node_id)
        return graph
