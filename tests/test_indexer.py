"""Tests for indexing.indexer: graph shape, fault tolerance, chunking toggles."""

import pytest

from handbook_graph.config.settings import ChunkingConfig
from handbook_graph.errors import GraphIOError
from handbook_graph.graph.models import EdgeType, NodeType
from handbook_graph.indexing.handbook import DocumentSource, FieldSpec, Handbook, OperationSpec, ServiceSpec
from handbook_graph.indexing.indexer import GraphIndexer, operation_doc_uri
from handbook_graph.storage.memory_driver import InMemoryGraphDriver


def _targets(driver, key, edge_type):
    return [e.to_key for e in driver.get_edges(key, "outgoing", edge_type)]


class TestGraphShape:
    def test_entities_from_tags(self, indexed_driver):
        order = indexed_driver.get_node("entity|Order")
        customer = indexed_driver.get_node("entity|Customer")
        assert order.node_type is NodeType.ENTITY
        assert order.description == "A customer order"
        assert order.operation_ids == ("Retrieve", "Create")
        assert customer.operation_ids == ("Create", "ListCustomers")

    def test_operation_node(self, indexed_driver):
        op = indexed_driver.get_node("op|Retrieve")
        assert op.method == "GET"
        assert op.signature == "GET /orders/{id} - Retrieve an order"
        assert op.category == "Retrieve"
        assert op.documentation_uri == operation_doc_uri("orders", "Retrieve")
        assert indexed_driver.get_node("op|Create").category == "Write"
        assert indexed_driver.get_node("op|Create").documentation_uri == ""

    def test_entity_operation_edges(self, indexed_driver):
        assert _targets(indexed_driver, "entity|Order", EdgeType.HAS_OPERATION) == ["op_Retrieve", "op_Create"]
        assert _targets(indexed_driver, "entity|Customer", EdgeType.HAS_OPERATION) == ["op_Create", "op_ListCustomers"]

    def test_entity_relationship_edge(self, indexed_driver):
        edges = indexed_driver.get_edges("entity|Order", "outgoing", EdgeType.RELATES_TO_ENTITY)
        assert [(e.to_key, e.properties) for e in edges] == [("entity_Customer", {"via": "Create"})]

    def test_examples_link_both_ways(self, indexed_driver):
        assert _targets(indexed_driver, "op|Retrieve", EdgeType.HAS_EXAMPLE) == ["example_Retrieve_0"]
        assert _targets(indexed_driver, "example|Retrieve|0", EdgeType.DEMONSTRATES) == ["op_Retrieve"]
        example = indexed_driver.get_node("example|Retrieve|0")
        assert example.request_body == '{"id": "o-1"}'

    def test_fields_are_deduplicated_per_entity(self, indexed_driver):
        fields = indexed_driver.get_edges("entity|Order", "incoming", EdgeType.RELATES_TO)
        assert sorted(e.from_key for e in fields) == ["field_Order_customerId", "field_Order_id", "field_Order_total"]
        assert indexed_driver.get_node("field|Order|id").sources == ("Retrieve:request", "Retrieve:response")

    def test_shared_field_records_every_operation(self, memory_driver):
        handbook = Handbook(
            services=[
                ServiceSpec(
                    slug="orders",
                    operations=[
                        OperationSpec(operation_id="Get", path="/o/{id}", tags=["Order"], request_fields=[FieldSpec(name="id")]),
                        OperationSpec(
                            operation_id="Delete", method="DELETE", path="/o/{id}", tags=["Order"], request_fields=[FieldSpec(name="id")]
                        ),
                    ],
                )
            ]
        )
        report = GraphIndexer(memory_driver).index_handbook(handbook)
        assert report.failures == []
        fields = memory_driver.get_edges("entity|Order", "incoming", EdgeType.RELATES_TO)
        assert [e.from_key for e in fields] == ["field_Order_id"]
        assert memory_driver.get_node("field|Order|id").sources == ("Get:request", "Delete:request")

    def test_operation_documentation_chunks(self, indexed_driver):
        chunks = _targets(indexed_driver, "op|Retrieve", EdgeType.HAS_DOCUMENTATION)
        assert chunks == ["chunk_doc_op_Retrieve_0"]
        assert _targets(indexed_driver, chunks[0], EdgeType.PART_OF) == ["doc_op_Retrieve"]
        doc = indexed_driver.get_node("doc|op|Retrieve")
        assert doc.doc_type == "openapi"
        assert _targets(indexed_driver, "doc|op|Retrieve", EdgeType.DESCRIBES) == ["entity_Order"]

    def test_standalone_document_attached_to_entity(self, indexed_driver):
        chunks = _targets(indexed_driver, "entity|Order", EdgeType.HAS_DOCUMENTATION)
        assert len(chunks) == 1
        chunk = indexed_driver.get_node(chunks[0])
        assert chunk.title == "Orders guide"
        assert chunk.source_uri == "kb:///guides/orders.md"

    def test_chunks_follow_each_other(self, memory_driver):
        body = "".join(f"Paragraph {i} explains how orders are billed and shipped.\n\n" for i in range(40))
        handbook = Handbook(
            name="shop",
            services=[ServiceSpec(slug="orders", operations=[OperationSpec(operation_id="A", path="/a", tags=["Order"])])],
            documents=[DocumentSource(uri="kb:///long.md", content=body, related_entities=["Order"])],
        )
        config = ChunkingConfig(min_size=100, target_size=200, max_size=400)
        report = GraphIndexer(memory_driver, config=config).index_handbook(handbook)
        assert report.ok
        chunk_keys = _targets(memory_driver, "entity|Order", EdgeType.HAS_DOCUMENTATION)
        assert len(chunk_keys) > 2
        for previous, following in zip(chunk_keys, chunk_keys[1:]):
            assert _targets(memory_driver, previous, EdgeType.FOLLOWS_CHUNK) == [following]

    def test_untagged_operation_falls_under_service(self, memory_driver):
        handbook = Handbook(
            services=[ServiceSpec(slug="billing", title="Billing", operations=[OperationSpec(operation_id="Pay", path="/pay")])]
        )
        GraphIndexer(memory_driver).index_handbook(handbook)
        assert _targets(memory_driver, "entity|Billing", EdgeType.HAS_OPERATION) == ["op_Pay"]


class TestReport:
    def test_counts(self, memory_driver, shop_handbook):
        report = GraphIndexer(memory_driver).index_handbook(shop_handbook)
        assert report.ok
        assert report.services_indexed == 2
        assert report.documents_indexed == 1
        assert report.nodes_stored == memory_driver.stats()["nodes"]
        assert report.edges_stored == memory_driver.stats()["edges"]
        assert report.to_dict()["handbook"] == "shop"

    def test_reindex_with_clear_is_idempotent(self, memory_driver, shop_handbook):
        indexer = GraphIndexer(memory_driver, clear_on_startup=True)
        first = indexer.index_handbook(shop_handbook)
        second = indexer.index_handbook(shop_handbook)
        assert second.failures == []
        assert first.nodes_stored == second.nodes_stored

    def test_reindex_without_clear_reports_duplicates(self, memory_driver, shop_handbook):
        indexer = GraphIndexer(memory_driver, clear_on_startup=False)
        indexer.index_handbook(shop_handbook)
        report = indexer.index_handbook(shop_handbook)
        assert report.ok
        assert any("Duplicate key" in f for f in report.failures)

    def test_disabled_backend_skips(self, shop_handbook):
        driver = InMemoryGraphDriver(enabled=False)
        report = GraphIndexer(driver).index_handbook(shop_handbook)
        assert report.skipped
        assert report.ok
        assert report.nodes_stored == 0


class _FlakyDriver(InMemoryGraphDriver):
    """Fails every write touching the ``Create`` operation."""

    def _insert_node(self, key, node):
        if "Create" in key:
            raise GraphIOError("disk full")
        super()._insert_node(key, node)


class _BrokenDriver(InMemoryGraphDriver):
    def _open(self):
        raise OSError("cannot open")


class TestFaultTolerance:
    def test_write_failures_are_logged_not_raised(self, shop_handbook, caplog):
        driver = _FlakyDriver()
        report = GraphIndexer(driver).index_handbook(shop_handbook)
        assert report.ok
        assert report.failures == ["node op|Create: disk full"]
        assert driver.get_node("op|Retrieve") is not None
        assert driver.get_node("op|ListCustomers") is not None
        assert "Failed to store node op|Create" in caplog.text

    def test_initialize_failure_reported(self, shop_handbook):
        report = GraphIndexer(_BrokenDriver()).index_handbook(shop_handbook)
        assert not report.ok
        assert "cannot open" in report.error


class TestChunkingToggle:
    def _long_handbook(self, doc_type):
        body = "".join(f"Paragraph {i} explains how orders are billed and shipped.\n\n" for i in range(60))
        return Handbook(
            services=[ServiceSpec(slug="orders", operations=[OperationSpec(operation_id="A", path="/a", tags=["Order"])])],
            documents=[DocumentSource(uri="kb:///long.md", content=body, doc_type=doc_type, related_entities=["Order"])],
        )

    def _chunk_count(self, config, doc_type="markdown"):
        driver = InMemoryGraphDriver()
        GraphIndexer(driver, config=config).index_handbook(self._long_handbook(doc_type))
        return len(_targets(driver, "entity|Order", EdgeType.HAS_DOCUMENTATION))

    def test_enabled_globally(self):
        assert self._chunk_count(ChunkingConfig(enabled=True)) > 1

    def test_disabled_globally_stores_single_chunk(self):
        assert self._chunk_count(ChunkingConfig(enabled=False)) == 1

    def test_type_override_disables(self):
        assert self._chunk_count(ChunkingConfig(enabled=True, overrides={"markdown": "false"})) == 1

    def test_type_override_enables(self):
        assert self._chunk_count(ChunkingConfig(enabled=False, overrides={"markdown": "yes"})) > 1

    @pytest.mark.parametrize("blank", ["", "   "])
    def test_blank_override_falls_back_to_global(self, blank):
        assert self._chunk_count(ChunkingConfig(enabled=True, overrides={"markdown": blank})) > 1
        assert self._chunk_count(ChunkingConfig(enabled=False, overrides={"markdown": blank})) == 1

    def test_override_only_applies_to_its_type(self):
        config = ChunkingConfig(enabled=True, overrides={"openapi": "false"})
        assert self._chunk_count(config, doc_type="markdown") > 1
        assert self._chunk_count(config, doc_type="openapi") == 1
