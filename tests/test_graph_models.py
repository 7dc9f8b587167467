"""Tests for graph.models: keys, node serialization, edge validation."""

import pytest

from handbook_graph.graph.models import (
    DocChunkNode,
    EdgeType,
    EntityNode,
    GraphEdge,
    NodeType,
    OperationNode,
    edge_key,
    node_from_properties,
    node_key,
    sanitize_key,
)


class TestKeys:
    def test_node_key_joins_parts(self):
        assert node_key("entity", "Order") == "entity|Order"
        assert node_key("field", "Order", "id") == "field|Order|id"

    def test_sanitize_replaces_separator(self):
        assert sanitize_key("entity|Order") == "entity_Order"

    def test_sanitize_replaces_unsafe_characters(self):
        assert sanitize_key("doc|kb:///guides/orders.md") == "doc_kb:___guides_orders.md"
        assert sanitize_key("entity|Sales Order") == "entity_Sales_Order"

    @pytest.mark.parametrize("key", ["entity|Order", "doc|kb:///a b/c.md", "op|get-order", "already_safe"])
    def test_sanitize_is_idempotent(self, key):
        once = sanitize_key(key)
        assert sanitize_key(once) == once

    def test_edge_key_uses_sanitized_endpoints(self):
        key = edge_key("entity|Order", "op|Retrieve", EdgeType.HAS_OPERATION)
        assert key == "entity_Order_to_op_Retrieve_HAS_OPERATION"

    def test_storage_key_property(self):
        node = EntityNode(key="entity|Order", name="Order")
        assert node.storage_key == "entity_Order"


class TestNodeSerialization:
    def test_properties_include_node_type(self):
        props = EntityNode(key="entity|Order", name="Order", operation_ids=("Retrieve",)).to_properties()
        assert props["node_type"] == "entity"
        assert props["operation_ids"] == ["Retrieve"]

    def test_rebuild_from_properties(self):
        node = OperationNode(
            key="op|Retrieve",
            operation_id="Retrieve",
            method="GET",
            path="/orders/{id}",
            tags=("Order",),
            category="Retrieve",
        )
        rebuilt = node_from_properties(node.to_properties())
        assert rebuilt == node
        assert rebuilt.node_type is NodeType.OPERATION

    def test_chunk_node_rebuilds(self):
        chunk = DocChunkNode(key="chunk|doc|0", content="hello", chunk_index=0, parent_key="doc")
        assert node_from_properties(chunk.to_properties()) == chunk

    def test_unknown_node_type_rejected(self):
        with pytest.raises(ValueError, match="node_type"):
            node_from_properties({"node_type": "widget", "key": "x"})

    def test_missing_node_type_rejected(self):
        with pytest.raises(ValueError):
            node_from_properties({"key": "x"})


class TestGraphEdge:
    def test_string_edge_type_is_normalized(self):
        edge = GraphEdge("a", "b", " has_operation ")
        assert edge.edge_type is EdgeType.HAS_OPERATION

    def test_empty_edge_type_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            GraphEdge("a", "b", "  ")

    def test_unknown_edge_type_rejected(self):
        with pytest.raises(ValueError, match="Unknown edge type"):
            GraphEdge("a", "b", "LIKES")

    def test_to_properties(self):
        edge = GraphEdge("entity|A", "entity|B", EdgeType.RELATES_TO_ENTITY, {"via": "Create"})
        assert edge.to_properties() == {
            "from_key": "entity|A",
            "to_key": "entity|B",
            "edge_type": "RELATES_TO_ENTITY",
            "properties": {"via": "Create"},
        }
        assert edge.key == "entity_A_to_entity_B_RELATES_TO_ENTITY"
