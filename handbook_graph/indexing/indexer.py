"""
Indexing orchestrator: builds the handbook knowledge graph.

For each service: one EntityNode per tag, one OperationNode per operation,
FieldNodes from request/response fields and ExampleNodes from embedded
examples. Operation documentation and free-text handbook documents become a
DocumentationNode parent plus DocChunkNodes.

Every node/edge write is independently fault tolerant: a failure is logged,
counted in the report, and indexing moves on. A failure to even open the
backend is logged and reported, never raised, so the handbook stays usable
for direct invocation without graph-assisted retrieval.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any

from handbook_graph.config.settings import ChunkingConfig
from handbook_graph.graph.models import (
    DocChunkNode,
    DocumentationNode,
    EdgeType,
    EntityNode,
    ExampleNode,
    FieldNode,
    GraphEdge,
    GraphNode,
    OperationNode,
    node_key,
)
from handbook_graph.indexing.chunker import DocumentChunker, infer_title
from handbook_graph.indexing.handbook import DocumentSource, Handbook, OperationSpec, ServiceSpec
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("indexing.indexer")


@dataclass
class IndexingReport:
    """Outcome of one ``index_handbook`` run."""

    handbook: str
    nodes_stored: int = 0
    edges_stored: int = 0
    services_indexed: int = 0
    documents_indexed: int = 0
    failures: list[str] = field(default_factory=list)
    skipped: bool = False  # backend disabled
    error: str | None = None  # set when the whole run failed
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "handbook": self.handbook,
            "ok": self.ok,
            "nodes_stored": self.nodes_stored,
            "edges_stored": self.edges_stored,
            "services_indexed": self.services_indexed,
            "documents_indexed": self.documents_indexed,
            "failures": list(self.failures),
            "skipped": self.skipped,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class _Run:
    report: IndexingReport


def _dump(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def operation_doc_uri(service_slug: str, operation_id: str) -> str:
    return f"kb:///services/{service_slug}/operations/{operation_id}.md"


class GraphIndexer:
    """
    Builds the knowledge graph for a handbook through a GraphDriver.

    Usage::

        indexer = GraphIndexer(driver, config=ChunkingConfig(), clear_on_startup=True)
        report = indexer.index_handbook(handbook)
    """

    def __init__(
        self,
        driver: GraphDriver,
        chunker: DocumentChunker | None = None,
        config: ChunkingConfig | None = None,
        clear_on_startup: bool = True,
    ) -> None:
        self._driver = driver
        self._config = config or ChunkingConfig()
        self._chunker = chunker or DocumentChunker.from_config(self._config)
        self._clear_on_startup = clear_on_startup

    def index_handbook(self, handbook: Handbook) -> IndexingReport:
        """
        Index every service and document of ``handbook``.

        Idempotent when ``clear_on_startup`` is set (the graph is wiped
        first); otherwise additive, and re-indexed keys show up as write
        failures in the report.
        """
        start = time.monotonic()
        run = _Run(IndexingReport(handbook=handbook.name))
        report = run.report

        try:
            self._driver.initialize()
            if not self._driver.is_initialized():
                LOG.info("Graph driver not initialized; skipping indexing of %r", handbook.name)
                report.skipped = True
                return report
            if self._clear_on_startup:
                self._driver.clear_all()

            self._index_entities(handbook, run)
            self._index_fields(handbook, run)

            for service in handbook.services:
                try:
                    self._index_service(service, run)
                    report.services_indexed += 1
                except Exception as exc:
                    LOG.exception("Failed to index service %r, skipping", service.slug)
                    report.failures.append(f"service {service.slug}: {exc}")

            for document in handbook.documents:
                try:
                    self._index_document(document, run)
                    report.documents_indexed += 1
                except Exception as exc:
                    LOG.exception("Failed to index document %r, skipping", document.uri)
                    report.failures.append(f"document {document.uri}: {exc}")

        except Exception as exc:
            LOG.exception("Graph indexing failed for handbook %r", handbook.name)
            report.error = str(exc)
        finally:
            report.duration_ms = int((time.monotonic() - start) * 1000)

        LOG.info(
            "Indexed handbook %r: %d nodes, %d edges, %d failures (%d ms)",
            handbook.name,
            report.nodes_stored,
            report.edges_stored,
            len(report.failures),
            report.duration_ms,
        )
        return report

    # ── Services ──────────────────────────────────────────────────────

    def _index_entities(self, handbook: Handbook, run: _Run) -> None:
        """One EntityNode per tag across all services, plus entity-to-entity links."""
        entities: dict[str, dict[str, Any]] = {}
        pairs: dict[tuple[str, str], str] = {}
        for service in handbook.services:
            for op in service.operations:
                names = service.entity_names(op)
                for name in names:
                    info = entities.setdefault(
                        name,
                        {"description": service.tag_description(name), "service": service.slug, "ops": []},
                    )
                    info["ops"].append(op.operation_id)
                for a, b in combinations(dict.fromkeys(names), 2):
                    pairs.setdefault((a, b), op.operation_id)

        for name, info in entities.items():
            self._store_node(
                EntityNode(
                    key=node_key("entity", name),
                    name=name,
                    description=info["description"],
                    service_slug=info["service"],
                    operation_ids=tuple(dict.fromkeys(info["ops"])),
                ),
                run,
            )
        for (a, b), operation_id in pairs.items():
            self._store_edge(
                GraphEdge(
                    node_key("entity", a),
                    node_key("entity", b),
                    EdgeType.RELATES_TO_ENTITY,
                    {"via": operation_id},
                ),
                run,
            )

    def _index_fields(self, handbook: Handbook, run: _Run) -> None:
        """One FieldNode per (entity, field name), remembering every operation that declares it."""
        fields: dict[str, dict[str, Any]] = {}
        for service in handbook.services:
            for op in service.operations:
                default_entity = service.entity_names(op)[0]
                for direction, specs in (("request", op.request_fields), ("response", op.response_fields)):
                    for spec in specs:
                        entity_name = spec.entity or default_entity
                        info = fields.setdefault(
                            node_key("field", entity_name, spec.name),
                            {"spec": spec, "entity": entity_name, "service": service.slug, "sources": []},
                        )
                        info["sources"].append(f"{op.operation_id}:{direction}")

        for field_key, info in fields.items():
            spec = info["spec"]
            entity_key = node_key("entity", info["entity"])
            if self._store_node(
                FieldNode(
                    key=field_key,
                    name=spec.name,
                    description=spec.description,
                    field_type=spec.field_type,
                    entity_key=entity_key,
                    service_slug=info["service"],
                    sources=tuple(dict.fromkeys(info["sources"])),
                ),
                run,
            ):
                self._store_edge(GraphEdge(field_key, entity_key, EdgeType.RELATES_TO), run)

    def _index_service(self, service: ServiceSpec, run: _Run) -> None:
        for op in service.operations:
            self._index_operation(service, op, run)

    def _index_operation(self, service: ServiceSpec, op: OperationSpec, run: _Run) -> None:
        op_key = node_key("op", op.operation_id)
        entity_names = service.entity_names(op)
        entity_keys = [node_key("entity", name) for name in entity_names]
        example_keys = [node_key("example", op.operation_id, str(i)) for i in range(len(op.examples))]
        doc_uri = operation_doc_uri(service.slug, op.operation_id) if op.documentation.strip() else ""

        stored = self._store_node(
            OperationNode(
                key=op_key,
                operation_id=op.operation_id,
                method=op.method.upper(),
                path=op.path,
                summary=op.summary,
                description=op.description,
                service_slug=service.slug,
                tags=tuple(op.tags),
                signature=op.signature(),
                example_keys=tuple(example_keys),
                documentation_uri=doc_uri,
                category=op.category or op.operation_id,
            ),
            run,
        )
        if not stored:
            return

        for entity_key in entity_keys:
            self._store_edge(GraphEdge(entity_key, op_key, EdgeType.HAS_OPERATION), run)

        for example_key, example in zip(example_keys, op.examples):
            if self._store_node(
                ExampleNode(
                    key=example_key,
                    name=example.name,
                    summary=example.summary,
                    request_body=_dump(example.request),
                    response_body=_dump(example.response),
                    response_status=example.status,
                    operation_key=op_key,
                ),
                run,
            ):
                self._store_edge(GraphEdge(op_key, example_key, EdgeType.HAS_EXAMPLE), run)
                self._store_edge(GraphEdge(example_key, op_key, EdgeType.DEMONSTRATES), run)

        if doc_uri:
            self._index_text(
                run,
                doc_key=node_key("doc", "op", op.operation_id),
                title=op.summary or op.operation_id,
                content=op.documentation,
                doc_type="openapi",
                uri=doc_uri,
                service_slug=service.slug,
                owners=[op_key],
                described=entity_keys,
            )

    # ── Documents ─────────────────────────────────────────────────────

    def _index_document(self, document: DocumentSource, run: _Run) -> None:
        entity_keys = [node_key("entity", name) for name in document.related_entities]
        self._index_text(
            run,
            doc_key=node_key("doc", document.uri),
            title=document.title or infer_title(document.content),
            content=document.content,
            doc_type=document.doc_type,
            uri=document.uri,
            service_slug=document.service_slug,
            owners=entity_keys,
            described=entity_keys,
        )

    def _index_text(
        self,
        run: _Run,
        *,
        doc_key: str,
        title: str,
        content: str,
        doc_type: str,
        uri: str,
        service_slug: str,
        owners: list[str],
        described: list[str],
    ) -> None:
        """Store a documentation parent, its chunks, and the chunk/owner edges."""
        stored = self._store_node(
            DocumentationNode(
                key=doc_key,
                title=title,
                content=content,
                doc_type=doc_type,
                source_uri=uri,
                related_keys=tuple(dict.fromkeys(owners + described)),
                service_slug=service_slug,
            ),
            run,
        )
        if not stored:
            return

        if self._config.is_enabled(doc_type):
            chunks = self._chunker.chunk(
                content, {"parent_key": doc_key, "source_uri": uri, "source_type": doc_type}
            )
        elif content.strip():
            chunks = [
                DocChunkNode(
                    key=node_key("chunk", doc_key, "0"),
                    content=content,
                    source_uri=uri,
                    source_type=doc_type,
                    chunk_index=0,
                    start_offset=0,
                    end_offset=len(content),
                    title=title,
                    parent_key=doc_key,
                )
            ]
        else:
            chunks = []

        stored_chunks = [chunk for chunk in chunks if self._store_node(chunk, run)]
        for chunk in stored_chunks:
            for owner in owners:
                self._store_edge(GraphEdge(owner, chunk.key, EdgeType.HAS_DOCUMENTATION), run)
        for previous, following in zip(stored_chunks, stored_chunks[1:]):
            self._store_edge(GraphEdge(previous.key, following.key, EdgeType.FOLLOWS_CHUNK), run)
        if stored_chunks:
            self._store_edge(GraphEdge(stored_chunks[0].key, doc_key, EdgeType.PART_OF), run)
        for entity_key in described:
            self._store_edge(GraphEdge(doc_key, entity_key, EdgeType.DESCRIBES), run)

    # ── Fault-tolerant writes ─────────────────────────────────────────

    def _store_node(self, node: GraphNode, run: _Run) -> bool:
        try:
            self._driver.store_node(node)
        except Exception as exc:
            LOG.warning("Failed to store node %s: %s", node.key, exc)
            run.report.failures.append(f"node {node.key}: {exc}")
            return False
        run.report.nodes_stored += 1
        return True

    def _store_edge(self, edge: GraphEdge, run: _Run) -> bool:
        try:
            self._driver.store_edge(edge)
        except Exception as exc:
            LOG.warning("Failed to store edge %s: %s", edge.key, exc)
            run.report.failures.append(f"edge {edge.key}: {exc}")
            return False
        run.report.edges_stored += 1
        return True
