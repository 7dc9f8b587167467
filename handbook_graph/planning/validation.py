"""
JSON extraction and plan validation.

Validation is structural and referential only: the plan must match the
ExecutionPlan shape and every operation id must exist in the handbook's
allowed-operation set. Data values and reachability are not checked.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from handbook_graph.errors import ValidationError
from handbook_graph.planning.models import ExecutionPlan

_FENCE = re.compile(r"```([A-Za-z0-9_+-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)


def extract_json_snippet(text: str | None) -> str | None:
    """
    First ```json fenced block in ``text``.

    Falls back to the first untagged fence whose body looks like a JSON
    object or array. Returns None when neither exists.
    """
    if not text:
        return None
    untagged: str | None = None
    for match in _FENCE.finditer(text):
        lang, body = match.group(1).lower(), match.group(2).strip()
        if not body:
            continue
        if lang == "json":
            return body
        if not lang and untagged is None and body[0] in "{[":
            untagged = body
    return untagged


def summarize_pydantic_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_json(data: str | Any) -> Any:
    if not isinstance(data, str):
        return data
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Malformed JSON: {exc}") from exc


def validate_plan(data: str | Any, allowed_operations: Iterable[str]) -> ExecutionPlan:
    """
    Parse and validate an execution plan.

    Raises:
        ValidationError: malformed JSON, wrong structure, no steps, or
            operation ids outside ``allowed_operations``
    """
    try:
        plan = ExecutionPlan.model_validate(parse_json(data))
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Execution plan does not match the expected structure: {summarize_pydantic_error(exc)}"
        ) from exc

    if not plan.steps:
        raise ValidationError("Execution plan has no steps")

    allowed = set(allowed_operations)
    unknown = [op for op in plan.referenced_operations() if op not in allowed]
    if unknown:
        raise ValidationError(
            f"Execution plan references unknown operations: {', '.join(unknown)}. "
            f"Allowed operations: {', '.join(sorted(allowed)) or '(none)'}"
        )
    return plan
