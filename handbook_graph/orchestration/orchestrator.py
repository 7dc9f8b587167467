"""
Request orchestration: EXTRACT -> RETRIEVE -> PLAN -> EXECUTE.

Stages run strictly in sequence, each under the request timeout. Storage
reads are blocking and run in a worker thread. Every request gets its own
ValueStore, which is cleared when the request ends whatever the outcome.

Failures after extraction do not raise: the refined assignment is reported
as an unhandled part carrying the reason.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pydantic import BaseModel, Field

from handbook_graph.config.settings import PlanningConfig
from handbook_graph.errors import ExecutionError, HandbookGraphError, NotFoundError, compact_cause
from handbook_graph.execution.interpreter import PlanInterpreter
from handbook_graph.execution.registry import OperationRegistry
from handbook_graph.execution.value_store import ValueStore
from handbook_graph.indexing.handbook import Handbook
from handbook_graph.llm.client import LLMClient
from handbook_graph.orchestration.extraction import EntityExtractor
from handbook_graph.orchestration.progress import NoOpProgressSink, ProgressSink
from handbook_graph.planning.generator import PlanGenerator
from handbook_graph.planning.models import ExecutionPlan
from handbook_graph.retrieval.context import ContextRetriever
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("orchestration.orchestrator")

T = TypeVar("T")


class HandledPart(BaseModel):
    assignment: str
    answer: Any = None
    plan: Optional[ExecutionPlan] = None


class UnhandledPart(BaseModel):
    description: str
    reason: str = ""


class OrchestrationResponse(BaseModel):
    handled: List[HandledPart] = Field(default_factory=list)
    unhandled: List[UnhandledPart] = Field(default_factory=list)


class Orchestrator:
    def __init__(
        self,
        extractor: EntityExtractor,
        retriever: ContextRetriever,
        generator: PlanGenerator,
        interpreter: PlanInterpreter,
        registry: OperationRegistry,
        config: Optional[PlanningConfig] = None,
        progress: Optional[ProgressSink] = None,
    ) -> None:
        self._extractor = extractor
        self._retriever = retriever
        self._generator = generator
        self._interpreter = interpreter
        self._registry = registry
        self._config = config or PlanningConfig()
        self._progress = progress or NoOpProgressSink()

    @classmethod
    def from_handbook(
        cls,
        handbook: Handbook,
        driver: GraphDriver,
        llm: LLMClient,
        registry: OperationRegistry,
        config: Optional[PlanningConfig] = None,
        progress: Optional[ProgressSink] = None,
    ) -> "Orchestrator":
        config = config or PlanningConfig()
        return cls(
            extractor=EntityExtractor(llm, handbook.entity_catalog(), config.max_attempts),
            retriever=ContextRetriever(driver),
            generator=PlanGenerator(llm, handbook.allowed_operations(), config.max_attempts),
            interpreter=PlanInterpreter(),
            registry=registry,
            config=config,
            progress=progress,
        )

    async def handle_prompt(self, prompt: str) -> OrchestrationResponse:
        """
        Answer one natural-language request.

        Raises:
            ExecutionError: entity extraction failed or timed out
        """
        store = ValueStore()
        response = OrchestrationResponse()
        try:
            extraction = await self._stage("extract", "Extracting entities", lambda: self._extractor.extract(prompt))
            for part in extraction.unhandledParts:
                response.unhandled.append(UnhandledPart(description=part, reason="Not covered by the handbook"))

            assignment = extraction.refinedAssignment.strip()
            if not assignment:
                return response

            try:
                records = await self._stage(
                    "retrieve",
                    "Retrieving context",
                    lambda: asyncio.to_thread(self._retriever.retrieve_by_context, extraction.context),
                )
                if not records:
                    raise NotFoundError("No handbook context matched the request")
                plan = await self._stage(
                    "plan", "Generating plan", lambda: self._generator.generate_plan(assignment, records)
                )
                result = await self._stage(
                    "execute", "Executing plan", lambda: self._interpreter.execute(plan, self._registry, store)
                )
            except HandbookGraphError as exc:
                LOG.warning("Could not handle %r: %s", assignment, exc)
                response.unhandled.append(UnhandledPart(description=assignment, reason=str(exc)))
            except Exception as exc:
                LOG.exception("Unexpected failure handling %r", assignment)
                response.unhandled.append(UnhandledPart(description=assignment, reason=compact_cause(exc)))
            else:
                response.handled.append(HandledPart(assignment=assignment, answer=result.output, plan=plan))
        finally:
            store.clear()

        LOG.info("Request finished: %d handled, %d unhandled", len(response.handled), len(response.unhandled))
        return response

    async def _stage(self, stage_id: str, label: str, start: Callable[[], Awaitable[T]]) -> T:
        if self._progress.is_cancelled():
            raise ExecutionError(f"Request cancelled before stage {stage_id}")
        timeout = self._config.request_timeout_seconds
        self._progress.begin_stage(stage_id, label)
        try:
            value = await asyncio.wait_for(start(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._progress.end_stage_error(stage_id, "timeout")
            raise ExecutionError(f"Stage {stage_id} timed out after {timeout:.0f}s") from exc
        except Exception as exc:
            self._progress.end_stage_error(stage_id, str(exc))
            raise
        self._progress.end_stage_ok(stage_id)
        return value
