"""
Tool implementations behind the MCP server.

Kept free of any MCP dependency so they can be called directly. One
HandbookGraphTools instance owns the graph driver for the process and the
handbook most recently indexed through it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from handbook_graph.cache.psk import PromptSchema, PromptSchemaKey
from handbook_graph.config.settings import AppConfig
from handbook_graph.errors import NotFoundError
from handbook_graph.indexing.handbook import Handbook
from handbook_graph.indexing.indexer import GraphIndexer
from handbook_graph.llm import build_llm_client
from handbook_graph.llm.client import LLMClient
from handbook_graph.orchestration.extraction import EntityExtractor
from handbook_graph.planning.generator import PlanGenerator
from handbook_graph.retrieval.context import ContextRetriever
from handbook_graph.retrieval.models import ContextTuple
from handbook_graph.storage.driver import GraphDriver
from handbook_graph.storage.registry import select_driver

LOG = logging.getLogger("tools")


def load_handbook(path: str | Path) -> Handbook:
    """Read a Handbook from its JSON file."""
    file = Path(path)
    if not file.is_file():
        raise NotFoundError(f"Handbook file not found: {file}")
    return Handbook.model_validate_json(file.read_text(encoding="utf-8"))


class HandbookGraphTools:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        driver: Optional[GraphDriver] = None,
        llm: Optional[LLMClient] = None,
    ) -> None:
        self._config = config or AppConfig.from_env()
        self._driver = driver
        self._llm = llm
        self._handbook: Optional[Handbook] = None

    @property
    def driver(self) -> GraphDriver:
        if self._driver is None:
            self._driver = select_driver(self._config.graph)
        if not self._driver.is_initialized():
            self._driver.initialize()
        return self._driver

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = build_llm_client(self._config.llm)
        return self._llm

    @property
    def handbook(self) -> Handbook:
        if self._handbook is None:
            raise NotFoundError("No handbook has been indexed yet; call index_handbook first")
        return self._handbook

    def index_handbook(self, handbookPath: str) -> Dict[str, Any]:
        handbook = load_handbook(handbookPath)
        LOG.info("Indexing handbook %r from %s", handbook.name, handbookPath)
        indexer = GraphIndexer(
            self.driver,
            config=self._config.chunking,
            clear_on_startup=self._config.graph.clear_on_startup,
        )
        report = indexer.index_handbook(handbook)
        if report.ok:
            self._handbook = handbook
        else:
            LOG.warning("Handbook %r was not indexed: %s", handbook.name, report.error)
        return report.to_dict()

    def retrieve_context(self, entity: str, operations: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        retriever = ContextRetriever(self.driver)
        records = retriever.retrieve_by_context([ContextTuple(entity=entity, operations=operations or [])])
        return [record.model_dump(mode="json") for record in records]

    def operation_for_prompt(self, operationKey: str) -> Optional[Dict[str, Any]]:
        result = ContextRetriever(self.driver).query_operation_for_prompt(operationKey)
        return result.model_dump(mode="json") if result is not None else None

    def graph_diagnostics(self, operationKey: str) -> Optional[Dict[str, Any]]:
        return ContextRetriever(self.driver).query_graph_diagnostics(operationKey)

    def prompt_schema_key(
        self,
        action: str,
        entities: Optional[List[str]] = None,
        params: Optional[Dict[str, Any]] = None,
        groupBy: Optional[List[str]] = None,
    ) -> Dict[str, str]:
        schema = PromptSchema(action=action, entities=entities or [], params=params or {}, group_by=groupBy or [])
        key = PromptSchemaKey.from_schema(schema)
        return {"stringKey": key.string_key, "hashKey": key.hash_key}

    async def plan_request(self, prompt: str) -> Dict[str, Any]:
        """Extract, retrieve and plan for ``prompt`` without executing anything."""
        handbook = self.handbook
        attempts = self._config.planning.max_attempts
        extraction = await EntityExtractor(self.llm, handbook.entity_catalog(), attempts).extract(prompt)
        payload: Dict[str, Any] = {"extraction": extraction.model_dump(mode="json"), "plan": None}
        if not extraction.refinedAssignment.strip():
            LOG.info("Nothing to plan for the request")
            return payload

        records = await asyncio.to_thread(ContextRetriever(self.driver).retrieve_by_context, extraction.context)
        if not records:
            raise NotFoundError("No handbook context matched the request")
        generator = PlanGenerator(self.llm, handbook.allowed_operations(), attempts)
        plan = await generator.generate_plan(extraction.refinedAssignment, records)
        LOG.info("Planned %d steps for %r", len(plan.steps), extraction.refinedAssignment)
        payload["plan"] = plan.model_dump(mode="json")
        return payload

    def graph_stats(self) -> Dict[str, Any]:
        return self.driver.stats()

    async def close(self) -> None:
        if self._llm is not None:
            await self._llm.close()
        if self._driver is not None:
            self._driver.shutdown()
