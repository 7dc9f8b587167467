from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from handbook_graph.config.settings import AppConfig
from handbook_graph.tools import HandbookGraphTools

try:
    from mcp.server.fastmcp import FastMCP
except ImportError as exc:  # pragma: no cover - dependency is optional at import time
    FastMCP = None
    _IMPORT_ERROR = exc
else:
    _IMPORT_ERROR = None


def _require_server() -> "FastMCP":
    if FastMCP is None:
        raise SystemExit(
            "The mcp package is required to run the server. "
            "Install it with `pip install mcp`."
        ) from _IMPORT_ERROR
    return FastMCP("handbook-graph-server")


def _validate_required(name: str, value: Optional[str]) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"Missing required field: {name}")


def build_server(tools: Optional[HandbookGraphTools] = None) -> "FastMCP":
    server = _require_server()
    tools = tools or HandbookGraphTools()

    @server.tool(description="Index a handbook JSON file into the knowledge graph and return the indexing report.")
    def index_handbook(handbookPath: str) -> dict:
        _validate_required("handbookPath", handbookPath)
        return tools.index_handbook(handbookPath)

    @server.tool(
        description="Retrieve graph context (entity, fields, documentation, operations) for an entity, "
        "optionally narrowed to specific operation ids or categories."
    )
    def retrieve_context(entity: str, operations: Optional[List[str]] = None) -> List[dict]:
        _validate_required("entity", entity)
        return tools.retrieve_context(entity, operations)

    @server.tool(description="Return everything needed to describe one operation in a prompt.")
    def operation_for_prompt(operationKey: str) -> Optional[dict]:
        _validate_required("operationKey", operationKey)
        return tools.operation_for_prompt(operationKey)

    @server.tool(description="Explain how an operation is linked in the graph (entities, edges, dangling references).")
    def graph_diagnostics(operationKey: str) -> Optional[dict]:
        _validate_required("operationKey", operationKey)
        return tools.graph_diagnostics(operationKey)

    @server.tool(description="Compute the prompt schema cache key (string form and SHA-256 hash).")
    def prompt_schema_key(
        action: str,
        entities: Optional[List[str]] = None,
        params: Optional[Dict[str, Any]] = None,
        groupBy: Optional[List[str]] = None,
    ) -> dict:
        _validate_required("action", action)
        return tools.prompt_schema_key(action, entities, params, groupBy)

    @server.tool(description="Extract entities, retrieve context and generate a validated execution plan for a request.")
    async def plan_request(prompt: str) -> dict:
        _validate_required("prompt", prompt)
        return await tools.plan_request(prompt)

    @server.tool(description="Return node and edge counts of the graph backend.")
    def graph_stats() -> dict:
        return tools.graph_stats()

    return server


def main() -> None:
    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    server = build_server(HandbookGraphTools(config))
    server.run()


if __name__ == "__main__":
    main()
