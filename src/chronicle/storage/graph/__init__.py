from src.chronicle.storage.graph.world_graph import WorldGraph, NodeType, EdgeType

__all__ = ["WorldGraph", "NodeType", "EdgeType"]
