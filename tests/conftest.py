"""
Shared test fixtures and pytest configuration.

Markers:
    @pytest.mark.kuzu: requires the optional kuzu package (pip install 'handbook-graph[graphdb]')

Run:
    pytest                   # everything; kuzu tests skip when kuzu is missing
    pytest -m "not kuzu"     # skip the embedded graph database tests
"""

import pytest

from handbook_graph.config.settings import ChunkingConfig
from handbook_graph.indexing.handbook import (
    DocumentSource,
    ExampleSpec,
    FieldSpec,
    Handbook,
    OperationSpec,
    ServiceSpec,
    TagSpec,
)
from handbook_graph.indexing.indexer import GraphIndexer
from handbook_graph.storage.memory_driver import InMemoryGraphDriver


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "kuzu: requires the optional kuzu embedded graph database")


@pytest.fixture
def shop_handbook():
    """Two services: orders (Order + Customer tags) and customers."""
    return Handbook(
        name="shop",
        services=[
            ServiceSpec(
                slug="orders",
                title="Orders",
                tags=[
                    TagSpec(name="Order", description="A customer order"),
                    TagSpec(name="Customer", description="A buyer"),
                ],
                operations=[
                    OperationSpec(
                        operation_id="Retrieve",
                        method="get",
                        path="/orders/{id}",
                        summary="Retrieve an order",
                        tags=["Order"],
                        request_fields=[FieldSpec(name="id", description="Order id")],
                        response_fields=[
                            FieldSpec(name="id", description="Order id"),
                            FieldSpec(name="total", field_type="number"),
                        ],
                        examples=[
                            ExampleSpec(name="basic", request={"id": "o-1"}, response={"id": "o-1", "total": 10})
                        ],
                        documentation="# Retrieve\n\nReturns a single order by id.",
                    ),
                    OperationSpec(
                        operation_id="Create",
                        method="POST",
                        path="/orders",
                        summary="Create an order",
                        tags=["Order", "Customer"],
                        category="Write",
                        request_fields=[FieldSpec(name="customerId", entity="Order")],
                    ),
                ],
            ),
            ServiceSpec(
                slug="customers",
                title="Customers",
                operations=[
                    OperationSpec(operation_id="ListCustomers", path="/customers", tags=["Customer"]),
                ],
            ),
        ],
        documents=[
            DocumentSource(
                uri="kb:///guides/orders.md",
                content="# Orders guide\n\nOrders belong to customers and carry a total.",
                related_entities=["Order"],
            )
        ],
    )


@pytest.fixture
def memory_driver():
    driver = InMemoryGraphDriver(handbook_name="shop")
    driver.initialize()
    yield driver
    driver.shutdown()


@pytest.fixture
def indexed_driver(memory_driver, shop_handbook):
    report = GraphIndexer(memory_driver, config=ChunkingConfig()).index_handbook(shop_handbook)
    assert report.ok and not report.failures
    return memory_driver
