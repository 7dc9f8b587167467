"""
Context retrieval: turns extracted intent into a bounded graph query.

For every ContextTuple the entity key is resolved, the driver is asked for
that entity's operations, fields, examples and documentation, and the
operation set is narrowed to the tuple's allow-list. Unknown entities and
entities left without operations produce no record. Records keep tuple
order and are not deduplicated across tuples.

A driver that is not initialized is a hard failure (GraphIOError), distinct
from an empty result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from handbook_graph.errors import GraphIOError, HandbookGraphError
from handbook_graph.graph.models import node_key
from handbook_graph.retrieval.models import (
    ContextRecord,
    ContextTuple,
    OperationPromptResult,
    OperationResult,
)
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("retrieval.context")


class ContextRetriever:
    """Graph-backed retrieval of planning context."""

    def __init__(self, driver: GraphDriver) -> None:
        self._driver = driver

    def _ensure_ready(self) -> None:
        if not self._driver.is_initialized():
            raise GraphIOError(
                f"Graph driver {self._driver.driver_name!r} is not initialized; "
                "graph-assisted retrieval is unavailable"
            )

    def retrieve_by_context(self, tuples: Iterable[ContextTuple]) -> list[ContextRecord]:
        """Query the graph for each tuple and concatenate the records in order."""
        self._ensure_ready()
        tuples = list(tuples)
        records: list[ContextRecord] = []

        for item in tuples:
            entity = item.entity.strip()
            if not entity:
                continue
            allow_list = [op.strip() for op in item.operations if op and op.strip()]
            try:
                raw = self._driver.query_context(node_key("entity", entity), allow_list)
            except HandbookGraphError:
                raise
            except Exception as exc:
                raise GraphIOError(f"Graph query failed for entity {entity!r}: {exc}") from exc

            if raw is None:
                LOG.debug("Entity %r not found in graph", entity)
                continue
            operations = [OperationResult.from_properties(p) for p in raw.get("operations", [])]
            if not operations:
                LOG.debug("Entity %r has no operations matching %s", entity, allow_list)
                continue

            records.append(
                ContextRecord(
                    entity=entity,
                    requested_operations=allow_list,
                    entity_info=raw.get("entity", {}),
                    fields=raw.get("fields", []),
                    documentation=raw.get("documentation", []),
                    operations=operations,
                )
            )

        LOG.info("Retrieved %d context records for %d context tuples", len(records), len(tuples))
        return records

    def query_operation_for_prompt(self, operation_key: str) -> OperationPromptResult | None:
        """Prompt-ready description of one operation, or None when it is not indexed."""
        self._ensure_ready()
        try:
            raw = self._driver.query_operation_for_prompt(operation_key)
        except HandbookGraphError:
            raise
        except Exception as exc:
            raise GraphIOError(f"Graph query failed for operation: {operation_key}") from exc
        if raw is None:
            LOG.warning("No results found for operation: %s", operation_key)
            return None
        return _prompt_result_from_raw(raw)

    def query_operations_for_prompt(self, tuples: Iterable[ContextTuple]) -> list[OperationPromptResult]:
        """
        Prompt-ready descriptions of every operation reachable from ``tuples``.

        Deduplicated by operation id. Falls back to the context record's own
        data when the direct operation query fails or finds nothing.
        """
        results: list[OperationPromptResult] = []
        seen: set[str] = set()
        for record in self.retrieve_by_context(tuples):
            for op in record.operations:
                if not op.operation_id or op.operation_id in seen:
                    continue
                try:
                    result = self.query_operation_for_prompt(op.operation_id)
                except GraphIOError as exc:
                    LOG.warning("Direct query for operation %s failed, using context: %s", op.operation_id, exc)
                    result = None
                if result is None:
                    result = _prompt_result_from_context(op, record)
                results.append(result)
                seen.add(op.operation_id)

        LOG.info("Found %d operations for prompt generation", len(results))
        return results

    def query_graph_diagnostics(self, operation_key: str) -> dict[str, Any] | None:
        self._ensure_ready()
        try:
            return self._driver.query_graph_diagnostics(operation_key)
        except HandbookGraphError:
            raise
        except Exception as exc:
            raise GraphIOError(f"Graph diagnostic query failed for operation: {operation_key}") from exc


def _fields_by_source(
    fields_by_entity: dict[str, list[dict[str, Any]]], operation_id: str, source: str
) -> dict[str, list[dict[str, Any]]]:
    """Fields this operation declares in its request or response."""
    selected: dict[str, list[dict[str, Any]]] = {}
    for entity, entity_fields in fields_by_entity.items():
        matching = [f for f in entity_fields if f"{operation_id}:{source}" in (f.get("sources") or ())]
        if matching:
            selected[entity] = matching
    return selected


def _join_chunks(chunks: list[dict[str, Any]]) -> str:
    return "\n\n".join(c.get("content", "") for c in chunks if c.get("content"))


def _prompt_result_from_raw(raw: dict[str, Any]) -> OperationPromptResult:
    op = raw["operation"]
    fields_by_entity = raw.get("fields", {})
    examples = raw.get("examples", [])
    return OperationPromptResult(
        operation_id=op["operation_id"],
        operation_name=op.get("summary") or op["operation_id"],
        description=op.get("description", ""),
        signature=op.get("signature", ""),
        documentation=_join_chunks(raw.get("documentation", [])),
        relationships=raw.get("relationships", []),
        examples=examples,
        input={
            "entities": [e.get("name") for e in raw.get("entities", [])],
            "fields": _fields_by_source(fields_by_entity, op["operation_id"], "request"),
        },
        output={
            "fields": _fields_by_source(fields_by_entity, op["operation_id"], "response"),
            "examples": [ex.get("response_body") for ex in examples if ex.get("response_body")],
        },
    )


def _prompt_result_from_context(op: OperationResult, record: ContextRecord) -> OperationPromptResult:
    return OperationPromptResult(
        operation_id=op.operation_id,
        operation_name=op.summary or op.operation_id,
        description=op.description,
        signature=op.signature,
        documentation=_join_chunks(op.documentation),
        examples=op.examples,
        input={"entities": [record.entity], "fields": {record.entity: record.fields}},
        output={"examples": [ex.get("response_body") for ex in op.examples if ex.get("response_body")]},
    )
