"""
Prompt composition for plan generation and entity extraction.

Both prompts share the same retry contract: when a previous attempt failed,
a ``## Previous attempt`` section carries the failure reason and the raw
model output so the next attempt can correct itself.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from handbook_graph.retrieval.models import ContextRecord


@dataclass(frozen=True)
class AttemptFeedback:
    """Why the previous generation attempt was rejected."""

    reason: str
    raw_output: str = ""


PLAN_OUTPUT_FORMAT = """Respond with a single fenced ```json block of the form:

```json
{
  "steps": [
    {
      "title": "short step title",
      "description": "what this step does",
      "services": [
        {"serviceName": "<service slug>", "operations": ["<operationId>"]}
      ]
    }
  ]
}
```

Only use operation ids listed under Available context."""

EXTRACTION_OUTPUT_FORMAT = """Respond with a single fenced ```json block of the form:

```json
{
  "refinedAssignment": "the assignment restated for the entities below",
  "context": [
    {"entity": "<entity name>", "operations": ["<operationId or category>"]}
  ],
  "unhandledParts": ["part of the request the handbook cannot serve"]
}
```

Every context entry must name at least one operation."""


def _feedback_section(feedback: AttemptFeedback | None) -> list[str]:
    if feedback is None:
        return []
    lines = [
        "## Previous attempt",
        f"The previous attempt failed because: {feedback.reason}",
    ]
    if feedback.raw_output:
        lines += ["", "Previous output:", feedback.raw_output.strip()]
    lines.append("")
    return lines


def _format_operation(op: Any) -> str:
    line = f"- `{op.operation_id}`"
    if op.signature:
        line += f": {op.signature}"
    if op.service_slug:
        line += f" (service `{op.service_slug}`)"
    return line


def render_context(records: Sequence[ContextRecord]) -> str:
    """Render retrieved context records as markdown for a planning prompt."""
    if not records:
        return "(no context available)"

    blocks: list[str] = []
    for record in records:
        lines = [f"### {record.entity}"]
        description = record.entity_info.get("description")
        if description:
            lines.append(description)
        if record.fields:
            names = sorted({f.get("name", "") for f in record.fields if f.get("name")})
            lines.append(f"Fields: {', '.join(names)}")
        lines.append("Operations:")
        for op in record.operations:
            lines.append(_format_operation(op))
            for example in op.examples[:1]:
                if example.get("request_body"):
                    lines.append(f"  Example request: {example['request_body']}")
        for doc in record.documentation[:3]:
            title = doc.get("title") or doc.get("source_uri", "")
            if title:
                lines.append(f"Documentation: {title}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_plan_prompt(
    intent: str,
    context: Sequence[ContextRecord],
    feedback: AttemptFeedback | None = None,
) -> str:
    sections = [
        "## Assignment",
        intent.strip(),
        "",
        "## Available context",
        render_context(context),
        "",
        "## Output format",
        PLAN_OUTPUT_FORMAT,
        "",
    ]
    sections += _feedback_section(feedback)
    return "\n".join(sections).rstrip() + "\n"


def build_extraction_prompt(
    prompt: str,
    catalog: Mapping[str, Sequence[str]],
    feedback: AttemptFeedback | None = None,
) -> str:
    """
    Compose the entity extraction prompt.

    ``catalog`` maps entity names to the operation ids (or categories) the
    handbook offers for them.
    """
    catalog_text = json.dumps({name: list(ops) for name, ops in catalog.items()}, indent=2, sort_keys=True)
    sections = [
        "## Request",
        prompt.strip(),
        "",
        "## Known entities",
        f"```json\n{catalog_text}\n```",
        "",
        "## Output format",
        EXTRACTION_OUTPUT_FORMAT,
        "",
    ]
    sections += _feedback_section(feedback)
    return "\n".join(sections).rstrip() + "\n"
