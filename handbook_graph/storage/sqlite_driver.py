"""
SQLite-backed graph driver.

Persistent backend with zero external dependencies (stdlib sqlite3).
Uses WAL mode for concurrent read safety. Rows are scoped by handbook name,
so several handbooks may share one database file.

Schema: graph_nodes (property map as JSON) and graph_edges (endpoint keys,
type and properties as JSON). Edge endpoints are not foreign keys; dangling
edges are allowed.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from handbook_graph.errors import DuplicateKeyError, GraphIOError
from handbook_graph.graph.models import EdgeType, GraphEdge, GraphNode, node_from_properties
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("storage.sqlite_driver")

_SCHEMA_SQL = """
-- Handbook nodes
CREATE TABLE IF NOT EXISTS graph_nodes (
    key TEXT NOT NULL,
    handbook TEXT NOT NULL,
    node_type TEXT NOT NULL,
    properties_json TEXT NOT NULL,
    PRIMARY KEY (key, handbook)
);

-- Relationships (insertion order kept by the seq column)
CREATE TABLE IF NOT EXISTS graph_edges (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    edge_key TEXT NOT NULL,
    handbook TEXT NOT NULL,
    from_key TEXT NOT NULL,
    to_key TEXT NOT NULL,
    edge_type TEXT NOT NULL,
    properties_json TEXT,
    UNIQUE (edge_key, handbook)
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_nodes_handbook ON graph_nodes(handbook);
CREATE INDEX IF NOT EXISTS idx_edges_from ON graph_edges(from_key, handbook);
CREATE INDEX IF NOT EXISTS idx_edges_to ON graph_edges(to_key, handbook);
"""


class SQLiteGraphDriver(GraphDriver):
    """SQLite-backed graph storage."""

    driver_name = "sqlite"

    def __init__(self, db_path: Path, handbook_name: str = "handbook", enabled: bool = True) -> None:
        super().__init__(handbook_name=handbook_name, enabled=enabled)
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _open(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _execute(self, sql: str, params: tuple = ()) -> list[tuple]:
        if self._conn is None:
            raise GraphIOError("SQLite graph driver is not connected")
        with self._lock:
            try:
                cur = self._conn.execute(sql, params)
                rows = cur.fetchall()
                self._conn.commit()
                return rows
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise GraphIOError(f"SQLite graph query failed: {exc}") from exc

    # ── Primitives ────────────────────────────────────────────────────

    def _insert_node(self, key: str, node: GraphNode) -> None:
        try:
            self._execute(
                "INSERT INTO graph_nodes (key, handbook, node_type, properties_json) VALUES (?, ?, ?, ?)",
                (key, self._handbook_name, node.node_type.value, json.dumps(node.to_properties())),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(key) from exc

    def _insert_edge(self, edge: GraphEdge) -> None:
        try:
            self._execute(
                "INSERT INTO graph_edges (edge_key, handbook, from_key, to_key, edge_type, properties_json) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    edge.key,
                    self._handbook_name,
                    edge.from_key,
                    edge.to_key,
                    edge.edge_type.value,
                    json.dumps(edge.properties) if edge.properties else None,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(edge.key) from exc

    def _fetch_node(self, key: str) -> GraphNode | None:
        rows = self._execute(
            "SELECT properties_json FROM graph_nodes WHERE key = ? AND handbook = ?",
            (key, self._handbook_name),
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
        clauses = []
        params: list[Any] = []
        if direction in ("outgoing", "both"):
            clauses.append("from_key = ?")
            params.append(key)
        if direction in ("incoming", "both"):
            clauses.append("to_key = ?")
            params.append(key)
        sql = (
            "SELECT from_key, to_key, edge_type, properties_json FROM graph_edges "
            f"WHERE handbook = ? AND ({' OR '.join(clauses)})"
        )
        params.insert(0, self._handbook_name)
        if edge_type is not None:
            sql += " AND edge_type = ?"
            params.append(edge_type.value)
        sql += " ORDER BY seq"

        edges = []
        for from_key, to_key, kind, props_json in self._execute(sql, tuple(params)):
            edges.append(
                GraphEdge(
                    from_key=from_key,
                    to_key=to_key,
                    edge_type=EdgeType(kind),
                    properties=json.loads(props_json) if props_json else {},
                )
            )
        return edges

    def _clear(self) -> None:
        self._execute("DELETE FROM graph_edges WHERE handbook = ?", (self._handbook_name,))
        self._execute("DELETE FROM graph_nodes WHERE handbook = ?", (self._handbook_name,))

    def _count(self) -> dict[str, Any]:
        node_types = {
            kind: count
            for kind, count in self._execute(
                "SELECT node_type, COUNT(*) FROM graph_nodes WHERE handbook = ? GROUP BY node_type",
                (self._handbook_name,),
            )
        }
        edge_count = self._execute(
            "SELECT COUNT(*) FROM graph_edges WHERE handbook = ?", (self._handbook_name,)
        )[0][0]
        return {"nodes": sum(node_types.values()), "edges": edge_count, "node_types": node_types}
