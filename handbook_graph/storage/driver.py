"""
Abstract graph driver interface.

Defines the GraphDriver ABC with three backends:
- InMemoryGraphDriver (reference, zero dependencies)
- SQLiteGraphDriver (stdlib sqlite3, persistent)
- KuzuGraphDriver (optional, embedded graph DB with Cypher)

Backends implement a handful of storage primitives (insert/fetch node,
insert/fetch edges, clear, count). The retrieval queries are composed here
from those primitives so every backend answers them identically.

Contract shared by all backends:
- node and edge keys are persisted in sanitized form (see
  ``graph.models.sanitize_key``); lookups apply the same transform
- writing a key that already exists raises DuplicateKeyError
- a disabled backend initializes without error, reports
  ``is_initialized() == False``, ignores writes and answers reads with None
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable
from typing import Any

from handbook_graph.errors import GraphIOError, HandbookGraphError
from handbook_graph.graph.models import (
    EdgeType,
    GraphEdge,
    GraphNode,
    NodeType,
    node_key,
    sanitize_key,
)

LOG = logging.getLogger("storage.driver")

DIRECTIONS = ("outgoing", "incoming", "both")


class GraphDriver(ABC):
    """
    Pluggable persistence and query interface for the handbook graph.

    Subclasses provide the storage primitives; gating on the
    enabled/initialized state and query composition live in this class.
    """

    driver_name = "abstract"

    def __init__(self, handbook_name: str = "handbook", enabled: bool = True) -> None:
        self._handbook_name = handbook_name
        self._enabled = enabled
        self._initialized = False

    @property
    def handbook_name(self) -> str:
        return self._handbook_name

    # ── Storage primitives ────────────────────────────────────────────

    @abstractmethod
    def _open(self) -> None:
        """Connect to the backend and ensure the schema exists."""

    @abstractmethod
    def _close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def _insert_node(self, key: str, node: GraphNode) -> None:
        """Insert a node under its sanitized key. Raises DuplicateKeyError."""

    @abstractmethod
    def _insert_edge(self, edge: GraphEdge) -> None:
        """Insert an edge whose endpoints are sanitized keys. Raises DuplicateKeyError."""

    @abstractmethod
    def _fetch_node(self, key: str) -> GraphNode | None:
        """Load a node by sanitized key."""

    @abstractmethod
    def _fetch_edges(
        self,
        key: str,
        direction: str = "outgoing",
        edge_type: EdgeType | None = None,
    ) -> list[GraphEdge]:
        """
        Edges touching a sanitized key, in insertion order.

        Args:
            key: Sanitized node key
            direction: "outgoing", "incoming", or "both"
            edge_type: Filter by edge type (None = all)
        """

    @abstractmethod
    def _clear(self) -> None:
        """Delete every node and edge."""

    @abstractmethod
    def _count(self) -> dict[str, Any]:
        """Node/edge counts: keys ``nodes``, ``edges``, ``node_types``."""

    # ── Lifecycle ─────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Open the backend. A disabled driver returns without connecting."""
        if self._initialized:
            return
        if not self._enabled:
            LOG.info(
                "Graph driver %r disabled for handbook %r; graph-assisted retrieval is off",
                self.driver_name,
                self._handbook_name,
            )
            return
        try:
            self._open()
        except HandbookGraphError:
            raise
        except Exception as exc:
            raise GraphIOError(f"Failed to initialize {self.driver_name} graph driver: {exc}") from exc
        self._initialized = True
        LOG.info("Graph driver %r initialized for handbook %r", self.driver_name, self._handbook_name)

    def is_initialized(self) -> bool:
        return self._initialized

    def shutdown(self) -> None:
        if not self._initialized:
            return
        try:
            self._close()
        finally:
            self._initialized = False
            LOG.info("Graph driver %r shut down", self.driver_name)

    def clear_all(self) -> None:
        """Delete all stored data (no-op when not initialized)."""
        if not self._initialized:
            return
        self._clear()
        LOG.info("Cleared graph for handbook %r", self._handbook_name)

    def stats(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "driver": self.driver_name,
            "handbook": self._handbook_name,
            "initialized": self._initialized,
            "nodes": 0,
            "edges": 0,
            "node_types": {},
        }
        if self._initialized:
            result.update(self._count())
        return result

    # ── Writes ────────────────────────────────────────────────────────

    def store_node(self, node: GraphNode) -> None:
        """Persist a node. Raises DuplicateKeyError if the key exists."""
        if not self._initialized:
            LOG.debug("Driver not initialized, ignoring node %s", node.key)
            return
        self._insert_node(sanitize_key(node.key), node)

    def store_edge(self, edge: GraphEdge) -> None:
        """Persist an edge. Raises DuplicateKeyError if (from, to, type) exists."""
        if not self._initialized:
            LOG.debug("Driver not initialized, ignoring edge %s", edge.key)
            return
        self._insert_edge(
            GraphEdge(
                from_key=sanitize_key(edge.from_key),
                to_key=sanitize_key(edge.to_key),
                edge_type=edge.edge_type,
                properties=dict(edge.properties),
            )
        )

    # ── Primitive reads ───────────────────────────────────────────────

    def get_node(self, key: str) -> GraphNode | None:
        if not self._initialized:
            return None
        return self._fetch_node(sanitize_key(key))

    def get_edges(
        self,
        key: str,
        direction: str = "outgoing",
        edge_type: EdgeType | None = None,
    ) -> list[GraphEdge]:
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
        if not self._initialized:
            return []
        return self._fetch_edges(sanitize_key(key), direction, edge_type)

    # ── Composed queries ──────────────────────────────────────────────

    def query_context(self, entity_key: str, categories: Iterable[str] | None = None) -> dict[str, Any] | None:
        """
        Context of one entity: its fields, documentation and operations.

        When ``categories`` is non-empty only operations whose operation id
        or category matches one of them (case-insensitive) are returned.
        Returns None for an unknown entity or a driver that is not initialized.
        """
        if not self._initialized:
            return None
        entity = self._fetch_node(sanitize_key(entity_key))
        if entity is None or entity.node_type is not NodeType.ENTITY:
            return None

        wanted = {c.strip().lower() for c in (categories or ()) if c and c.strip()}
        operations: list[dict[str, Any]] = []
        for op in self._targets(entity.storage_key, EdgeType.HAS_OPERATION, NodeType.OPERATION):
            if wanted and not ({op.operation_id.lower(), op.category.lower()} & wanted):
                continue
            props = op.to_properties()
            props["examples"] = [
                ex.to_properties() for ex in self._targets(op.storage_key, EdgeType.HAS_EXAMPLE, NodeType.EXAMPLE)
            ]
            props["documentation"] = self._chunks(op.storage_key)
            operations.append(props)

        return {
            "entity": entity.to_properties(),
            "fields": [f.to_properties() for f in self._sources(entity.storage_key, EdgeType.RELATES_TO, NodeType.FIELD)],
            "documentation": self._chunks(entity.storage_key),
            "operations": operations,
        }

    def query_operation_for_prompt(self, operation_key: str) -> dict[str, Any] | None:
        """
        Everything needed to describe one operation in a prompt.

        Accepts ``op|<id>`` keys, sanitized keys or bare operation ids.
        """
        if not self._initialized:
            return None
        op = self._resolve_operation(operation_key)
        if op is None:
            return None

        entities = self._sources(op.storage_key, EdgeType.HAS_OPERATION, NodeType.ENTITY)
        fields_by_entity = {
            entity.name: [
                f.to_properties() for f in self._sources(entity.storage_key, EdgeType.RELATES_TO, NodeType.FIELD)
            ]
            for entity in entities
        }
        relationships = [
            edge.to_properties()
            for entity in entities
            for edge in self._fetch_edges(entity.storage_key, "outgoing", EdgeType.RELATES_TO_ENTITY)
        ]
        return {
            "operation": op.to_properties(),
            "entities": [entity.to_properties() for entity in entities],
            "fields": fields_by_entity,
            "examples": [
                ex.to_properties() for ex in self._targets(op.storage_key, EdgeType.HAS_EXAMPLE, NodeType.EXAMPLE)
            ],
            "documentation": self._chunks(op.storage_key),
            "relationships": relationships,
        }

    def query_graph_diagnostics(self, operation_key: str) -> dict[str, Any] | None:
        """
        Inspect the graph structure around one operation.

        Reports the connected entities (with the edge type linking them and
        their field count), the edge types reaching and leaving the
        operation, entity-to-entity relationships among the connected
        entities, and how many edges point at missing nodes.
        """
        if not self._initialized:
            return None
        op = self._resolve_operation(operation_key)
        if op is None:
            return None

        incoming = self._fetch_edges(op.storage_key, "incoming")
        outgoing = self._fetch_edges(op.storage_key, "outgoing")

        entities: list[dict[str, Any]] = []
        entity_keys: set[str] = set()
        dangling = 0
        for edge in incoming:
            source = self._fetch_node(edge.from_key)
            if source is None:
                dangling += 1
                continue
            if source.node_type is NodeType.ENTITY and source.storage_key not in entity_keys:
                entity_keys.add(source.storage_key)
                entities.append(
                    {
                        "key": source.key,
                        "name": source.name,
                        "edge_type": edge.edge_type.value,
                        "field_count": len(self._sources(source.storage_key, EdgeType.RELATES_TO, NodeType.FIELD)),
                    }
                )
        dangling += sum(1 for edge in outgoing if self._fetch_node(edge.to_key) is None)

        relationships = []
        for key in entity_keys:
            for edge in self._fetch_edges(key, "outgoing", EdgeType.RELATES_TO_ENTITY):
                relationships.append(edge.to_properties())

        return {
            "operation_key": op.key,
            "operation_id": op.operation_id,
            "entities": entities,
            "incoming_edge_types": dict(Counter(e.edge_type.value for e in incoming)),
            "outgoing_edge_types": dict(Counter(e.edge_type.value for e in outgoing)),
            "entity_relationships": relationships,
            "dangling_edges": dangling,
        }

    # ── Helpers ───────────────────────────────────────────────────────

    def _resolve_operation(self, operation_key: str) -> GraphNode | None:
        candidates = [operation_key]
        if "|" not in operation_key and not operation_key.startswith("op_"):
            candidates.insert(0, node_key("op", operation_key))
        for candidate in candidates:
            node = self._fetch_node(sanitize_key(candidate))
            if node is not None and node.node_type is NodeType.OPERATION:
                return node
        return None

    def _targets(self, key: str, edge_type: EdgeType, node_type: NodeType) -> list[Any]:
        return self._linked(self._fetch_edges(key, "outgoing", edge_type), "to_key", node_type)

    def _sources(self, key: str, edge_type: EdgeType, node_type: NodeType) -> list[Any]:
        return self._linked(self._fetch_edges(key, "incoming", edge_type), "from_key", node_type)

    def _linked(self, edges: list[GraphEdge], end: str, node_type: NodeType) -> list[Any]:
        """Resolve edge endpoints to nodes, skipping dangling edges and duplicates."""
        seen: set[str] = set()
        nodes: list[Any] = []
        for edge in edges:
            other = getattr(edge, end)
            if other in seen:
                continue
            seen.add(other)
            node = self._fetch_node(other)
            if node is not None and node.node_type is node_type:
                nodes.append(node)
        return nodes

    def _chunks(self, owner_key: str) -> list[dict[str, Any]]:
        chunks = self._targets(owner_key, EdgeType.HAS_DOCUMENTATION, NodeType.DOC_CHUNK)
        chunks.sort(key=lambda c: (c.parent_key, c.chunk_index))
        return [c.to_properties() for c in chunks]
