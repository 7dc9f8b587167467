"""
Kuzu-backed graph driver.

Optional backend, requires ``pip install kuzu``.
Embedded graph database queried with parameterized Cypher.

Edges are kept in their own node table rather than as Kuzu relationships:
a Kuzu relationship needs both endpoints to exist, while the handbook graph
allows dangling edges.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from handbook_graph.errors import DuplicateKeyError, GraphIOError
from handbook_graph.graph.models import EdgeType, GraphEdge, GraphNode, node_from_properties
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("storage.kuzu_driver")

try:
    import kuzu
except ImportError:
    kuzu = None  # type: ignore


# Schema DDL (Cypher CREATE TABLE statements)
_NODE_TABLES = [
    """
    CREATE NODE TABLE IF NOT EXISTS HandbookNode(
        uid STRING,
        key STRING,
        handbook STRING,
        node_type STRING,
        properties_json STRING,
        PRIMARY KEY (uid)
    )
    """,
    """
    CREATE NODE TABLE IF NOT EXISTS HandbookEdge(
        uid STRING,
        seq INT64,
        handbook STRING,
        from_key STRING,
        to_key STRING,
        edge_type STRING,
        properties_json STRING,
        PRIMARY KEY (uid)
    )
    """,
]


def _rows(result: Any) -> list[list[Any]]:
    rows = []
    while result.has_next():
        rows.append(result.get_next())
    return rows


class KuzuGraphDriver(GraphDriver):
    """Kuzu-backed graph storage with native Cypher support."""

    driver_name = "kuzu"

    def __init__(self, db_path: Path, handbook_name: str = "handbook", enabled: bool = True) -> None:
        if kuzu is None:
            raise ImportError("kuzu required for KuzuGraphDriver. Install with: pip install 'handbook-graph[graphdb]'")
        super().__init__(handbook_name=handbook_name, enabled=enabled)
        self._db_path = Path(db_path)
        self._db = None
        self._conn = None
        self._seq = 0
        self._lock = threading.RLock()

    def _open(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = kuzu.Database(str(self._db_path))
        self._conn = kuzu.Connection(self._db)
        for ddl in _NODE_TABLES:
            try:
                self._conn.execute(ddl.strip())
            except Exception as exc:
                if "already exists" not in str(exc).lower():
                    LOG.warning("Kuzu schema warning: %s", exc)
        rows = self._query(
            "MATCH (e:HandbookEdge) WHERE e.handbook = $hb RETURN max(e.seq)",
            {"hb": self._handbook_name},
        )
        self._seq = rows[0][0] if rows and rows[0][0] is not None else 0

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
            if self._db is not None:
                self._db.close()
            self._conn = None
            self._db = None

    def _query(self, cypher: str, params: dict[str, Any]) -> list[list[Any]]:
        if self._conn is None:
            raise GraphIOError("Kuzu graph driver is not connected")
        with self._lock:
            try:
                return _rows(self._conn.execute(cypher, params))
            except RuntimeError as exc:
                raise GraphIOError(f"Kuzu graph query failed: {exc}") from exc

    def _uid(self, key: str) -> str:
        return f"{self._handbook_name}::{key}"

    def _exists(self, table: str, uid: str) -> bool:
        rows = self._query(f"MATCH (n:{table}) WHERE n.uid = $uid RETURN count(n)", {"uid": uid})
        return bool(rows and rows[0][0])

    # ── Primitives ────────────────────────────────────────────────────

    def _insert_node(self, key: str, node: GraphNode) -> None:
        uid = self._uid(key)
        with self._lock:
            if self._exists("HandbookNode", uid):
                raise DuplicateKeyError(key)
            self._query(
                "CREATE (n:HandbookNode {uid: $uid, key: $key, handbook: $hb, "
                "node_type: $nt, properties_json: $props})",
                {
                    "uid": uid,
                    "key": key,
                    "hb": self._handbook_name,
                    "nt": node.node_type.value,
                    "props": json.dumps(node.to_properties()),
                },
            )

    def _insert_edge(self, edge: GraphEdge) -> None:
        uid = self._uid(edge.key)
        with self._lock:
            if self._exists("HandbookEdge", uid):
                raise DuplicateKeyError(edge.key)
            self._seq += 1
            self._query(
                "CREATE (e:HandbookEdge {uid: $uid, seq: $seq, handbook: $hb, from_key: $src, "
                "to_key: $tgt, edge_type: $et, properties_json: $props})",
                {
                    "uid": uid,
                    "seq": self._seq,
                    "hb": self._handbook_name,
                    "src": edge.from_key,
                    "tgt": edge.to_key,
                    "et": edge.edge_type.value,
                    "props": json.dumps(edge.properties) if edge.properties else "",
                },
            )

    def _fetch_node(self, key: str) -> GraphNode | None:
        rows = self._query(
            "MATCH (n:HandbookNode) WHERE n.uid = $uid RETURN n.properties_json",
            {"uid": self._uid(key)},
        )
        if not rows:
            return None
        return node_from_properties(json.loads(rows[0][0]))

    def _fetch_edges(
        self,
        key: str,
        direction: str = "outgoing",
        edge_type: EdgeType | None = None,
    ) -> list[GraphEdge]:
        if direction == "outgoing":
            match = "e.from_key = $k"
        elif direction == "incoming":
            match = "e.to_key = $k"
        else:
            match = "(e.from_key = $k OR e.to_key = $k)"
        params: dict[str, Any] = {"hb": self._handbook_name, "k": key}
        cypher = f"MATCH (e:HandbookEdge) WHERE e.handbook = $hb AND {match}"
        if edge_type is not None:
            cypher += " AND e.edge_type = $et"
            params["et"] = edge_type.value
        cypher += " RETURN e.from_key, e.to_key, e.edge_type, e.properties_json ORDER BY e.seq"

        return [
            GraphEdge(
                from_key=src,
                to_key=tgt,
                edge_type=EdgeType(kind),
                properties=json.loads(props) if props else {},
            )
            for src, tgt, kind, props in self._query(cypher, params)
        ]

    def _clear(self) -> None:
        params = {"hb": self._handbook_name}
        self._query("MATCH (e:HandbookEdge) WHERE e.handbook = $hb DELETE e", params)
        self._query("MATCH (n:HandbookNode) WHERE n.handbook = $hb DELETE n", params)
        self._seq = 0

    def _count(self) -> dict[str, Any]:
        params = {"hb": self._handbook_name}
        node_types = {
            kind: count
            for kind, count in self._query(
                "MATCH (n:HandbookNode) WHERE n.handbook = $hb RETURN n.node_type, count(n)", params
            )
        }
        edges = self._query("MATCH (e:HandbookEdge) WHERE e.handbook = $hb RETURN count(e)", params)
        return {"nodes": sum(node_types.values()), "edges": edges[0][0] if edges else 0, "node_types": node_types}
