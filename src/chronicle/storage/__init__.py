"""
Storage layer for story memory.

Provides:
- NetworkX graph mirroring entities, relationships, facts and knowledge
"""

from src.chronicle.storage.graph.world_graph import WorldGraph, NodeType, EdgeType

__all__ = [
    # Graph
    "WorldGraph",
    "NodeType",
    "EdgeType",
]
