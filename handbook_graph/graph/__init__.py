"""
Handbook knowledge graph vocabulary.

Usage:
    from handbook_graph.graph import EntityNode, GraphEdge, EdgeType, node_key

    order = EntityNode(key=node_key("entity", "Order"), name="Order")
    edge = GraphEdge(order.key, node_key("op", "getOrder"), EdgeType.HAS_OPERATION)
"""

from .models import (
    NODE_CLASSES,
    DocChunkNode,
    DocumentationNode,
    EdgeType,
    EntityNode,
    ExampleNode,
    FieldNode,
    GraphEdge,
    GraphNode,
    NodeType,
    OperationNode,
    edge_key,
    node_from_properties,
    node_key,
    sanitize_key,
)

__all__ = [
    "NODE_CLASSES",
    "DocChunkNode",
    "DocumentationNode",
    "EdgeType",
    "EntityNode",
    "ExampleNode",
    "FieldNode",
    "GraphEdge",
    "GraphNode",
    "NodeType",
    "OperationNode",
    "edge_key",
    "node_from_properties",
    "node_key",
    "sanitize_key",
]
