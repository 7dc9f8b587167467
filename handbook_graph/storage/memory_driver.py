"""
In-memory graph driver.

Reference backend with no external dependencies. Used by the test suite and
as the fallback when no database backend is configured. Adjacency indexes
mirror the ones the call-graph model kept (outgoing/incoming per node).
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Any

from handbook_graph.errors import DuplicateKeyError
from handbook_graph.graph.models import EdgeType, GraphEdge, GraphNode
from handbook_graph.storage.driver import GraphDriver


class InMemoryGraphDriver(GraphDriver):
    """Dict-backed graph storage, safe for concurrent readers and writers."""

    driver_name = "memory"

    def __init__(self, handbook_name: str = "handbook", enabled: bool = True) -> None:
        super().__init__(handbook_name=handbook_name, enabled=enabled)
        self._lock = threading.RLock()
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, GraphEdge] = {}
        self._outgoing: dict[str, list[str]] = {}
        self._incoming: dict[str, list[str]] = {}

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _insert_node(self, key: str, node: GraphNode) -> None:
        with self._lock:
            if key in self._nodes:
                raise DuplicateKeyError(key)
            self._nodes[key] = node

    def _insert_edge(self, edge: GraphEdge) -> None:
        key = edge.key
        with self._lock:
            if key in self._edges:
                raise DuplicateKeyError(key)
            self._edges[key] = edge
            self._outgoing.setdefault(edge.from_key, []).append(key)
            self._incoming.setdefault(edge.to_key, []).append(key)

    def _fetch_node(self, key: str) -> GraphNode | None:
        with self._lock:
            return self._nodes.get(key)

    def _fetch_edges(
        self,
        key: str,
        direction: str = "outgoing",
        edge_type: EdgeType | None = None,
    ) -> list[GraphEdge]:
        with self._lock:
            edge_keys: list[str] = []
            if direction in ("outgoing", "both"):
                edge_keys.extend(self._outgoing.get(key, ()))
            if direction in ("incoming", "both"):
                edge_keys.extend(self._incoming.get(key, ()))
            edges = [self._edges[k] for k in edge_keys]
        if edge_type is not None:
            edges = [e for e in edges if e.edge_type is edge_type]
        return edges

    def _clear(self) -> None:
        with self._lock:
            self._nodes.clear()
            self._edges.clear()
            self._outgoing.clear()
            self._incoming.clear()

    def _count(self) -> dict[str, Any]:
        with self._lock:
            return {
                "nodes": len(self._nodes),
                "edges": len(self._edges),
                "node_types": dict(Counter(n.node_type.value for n in self._nodes.values())),
            }
