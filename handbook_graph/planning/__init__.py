"""Execution plan generation: prompt, model call, JSON extraction, validation, retry."""

from handbook_graph.planning.generator import (
    GenerationAttempt,
    GenerationLoop,
    GenerationRun,
    GenerationState,
    PlanGenerator,
    raise_for_failure,
)
from handbook_graph.planning.models import ExecutionPlan, PlanService, PlanStep
from handbook_graph.planning.prompt import (
    AttemptFeedback,
    build_extraction_prompt,
    build_plan_prompt,
    render_context,
)
from handbook_graph.planning.validation import extract_json_snippet, validate_plan

__all__ = [
    "AttemptFeedback",
    "ExecutionPlan",
    "GenerationAttempt",
    "GenerationLoop",
    "GenerationRun",
    "GenerationState",
    "PlanGenerator",
    "PlanService",
    "PlanStep",
    "build_extraction_prompt",
    "build_plan_prompt",
    "extract_json_snippet",
    "raise_for_failure",
    "render_context",
    "validate_plan",
]
