"""
Flow graph of captured screens
"""

from .screen_node import ScreenNode, ScreenType, FlowEdge
from .flow_graph import FlowGraph, FlowWalk, WalkStep, ROOT_ID

__all__ = [
    'ScreenNode',
    'ScreenType',
    'FlowEdge',
    'FlowGraph',
    'FlowWalk',
    'WalkStep',
    'ROOT_ID',
]
