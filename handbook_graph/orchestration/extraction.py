"""
Entity extraction: natural-language request -> retrieval intent.

The model is asked to restate the request for the handbook's entities and
to list ``(entity, operations)`` tuples. Output goes through the same
bounded extract/validate/retry loop as plan generation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import List

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from handbook_graph.errors import ValidationError
from handbook_graph.llm.client import LLMClient
from handbook_graph.planning.generator import (
    DEFAULT_MAX_ATTEMPTS,
    GenerationLoop,
    GenerationRun,
    raise_for_failure,
)
from handbook_graph.planning.prompt import build_extraction_prompt
from handbook_graph.planning.validation import parse_json, summarize_pydantic_error
from handbook_graph.retrieval.models import ContextTuple

LOG = logging.getLogger("orchestration.extraction")


class ExtractionResult(BaseModel):
    refinedAssignment: str = ""
    context: List[ContextTuple] = Field(default_factory=list)
    unhandledParts: List[str] = Field(default_factory=list)


def validate_extraction(data: str | object) -> ExtractionResult:
    """
    Either a refined assignment or unhandled parts must be present; a refined
    assignment needs at least one context tuple, each naming an operation.
    """
    try:
        result = ExtractionResult.model_validate(parse_json(data))
    except PydanticValidationError as exc:
        raise ValidationError(f"Extraction does not match the expected structure: {summarize_pydantic_error(exc)}") from exc

    if not result.refinedAssignment.strip():
        if not result.unhandledParts:
            raise ValidationError(
                "The extraction did not produce a refined assignment. "
                "Either the refined assignment or the unhandled parts must be provided."
            )
        return result

    if not result.context:
        raise ValidationError("The extraction did not detect any entities and their corresponding operations.")
    for item in result.context:
        if not item.entity.strip():
            raise ValidationError("Every context entry must name an entity.")
        if not [op for op in item.operations if op.strip()]:
            raise ValidationError(
                f"Each entity must have at least one operation associated to it, review the entity {item.entity!r}."
            )
    return result


class EntityExtractor:
    def __init__(
        self,
        llm: LLMClient,
        catalog: Mapping[str, Sequence[str]],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._loop = GenerationLoop(llm, max_attempts)
        self._catalog = {name: list(ops) for name, ops in catalog.items()}

    async def run_extraction(self, prompt: str) -> GenerationRun[ExtractionResult]:
        return await self._loop.run(
            lambda feedback: build_extraction_prompt(prompt, self._catalog, feedback),
            validate_extraction,
            label="entity extraction",
        )

    async def extract(self, prompt: str) -> ExtractionResult:
        """
        Raises:
            ExecutionError: every attempt was rejected
        """
        result = raise_for_failure(await self.run_extraction(prompt))
        LOG.info(
            "Extracted %d context tuples (%d unhandled parts)", len(result.context), len(result.unhandledParts)
        )
        return result
