"""Tests for planning: JSON extraction, plan validation, prompts, retry loop."""

import json

import pytest

from handbook_graph.errors import ExecutionError, ValidationError
from handbook_graph.llm.client import MockLLMClient
from handbook_graph.planning import (
    AttemptFeedback,
    ExecutionPlan,
    GenerationLoop,
    GenerationState,
    PlanGenerator,
    build_extraction_prompt,
    build_plan_prompt,
    extract_json_snippet,
    render_context,
    validate_plan,
)
from handbook_graph.retrieval.models import ContextRecord, OperationResult

ALLOWED = {"Retrieve", "Create", "ListCustomers"}


def plan_response(*operations, service="orders"):
    plan = {
        "steps": [
            {
                "title": f"Run {op}",
                "description": f"Call {op}",
                "services": [{"serviceName": service, "operations": [op]}],
            }
            for op in operations
        ]
    }
    return f"Here is the plan:\n```json\n{json.dumps(plan)}\n```\n"


def _context():
    return [
        ContextRecord(
            entity="Order",
            requested_operations=["Retrieve"],
            entity_info={"description": "A customer order"},
            fields=[{"name": "total"}, {"name": "id"}],
            operations=[
                OperationResult(
                    operation_id="Retrieve",
                    signature="GET /orders/{id} - Retrieve an order",
                    service_slug="orders",
                    examples=[{"name": "basic", "request_body": '{"id": "o-1"}'}],
                )
            ],
            documentation=[{"title": "Orders guide", "source_uri": "kb:///guides/orders.md"}],
        )
    ]


class TestExtractJsonSnippet:
    def test_json_fence(self):
        assert extract_json_snippet('text\n```json\n{"a": 1}\n```\nmore') == '{"a": 1}'

    def test_first_json_fence_wins(self):
        text = '```json\n{"a": 1}\n```\n```json\n{"b": 2}\n```'
        assert extract_json_snippet(text) == '{"a": 1}'

    def test_json_fence_preferred_over_untagged(self):
        text = '```\n{"untagged": true}\n```\n```JSON\n{"tagged": true}\n```'
        assert extract_json_snippet(text) == '{"tagged": true}'

    def test_untagged_fence_fallback(self):
        assert extract_json_snippet("```\n[1, 2]\n```") == "[1, 2]"

    def test_other_language_ignored(self):
        assert extract_json_snippet("```python\n{'a': 1}\n```") is None

    @pytest.mark.parametrize("text", [None, "", "no fences here", '{"bare": "json"}', "```json\n```"])
    def test_nothing_found(self, text):
        assert extract_json_snippet(text) is None


class TestValidatePlan:
    def test_valid_plan(self):
        plan = validate_plan({"steps": [{"title": "t", "services": [{"serviceName": "orders", "operations": ["Retrieve"]}]}]}, ALLOWED)
        assert isinstance(plan, ExecutionPlan)
        assert plan.referenced_operations() == ["Retrieve"]

    def test_accepts_json_text(self):
        text = '{"steps": [{"title": "t", "services": [{"serviceName": "orders", "operations": ["Create"]}]}]}'
        assert validate_plan(text, ALLOWED).steps[0].title == "t"

    def test_unknown_operation_rejected(self):
        data = {"steps": [{"title": "t", "services": [{"serviceName": "orders", "operations": ["doesNotExist"]}]}]}
        with pytest.raises(ValidationError, match="unknown operations: doesNotExist"):
            validate_plan(data, ALLOWED)

    def test_malformed_json(self):
        with pytest.raises(ValidationError, match="Malformed JSON"):
            validate_plan("{not json", ALLOWED)

    def test_wrong_structure(self):
        with pytest.raises(ValidationError, match="expected structure"):
            validate_plan({"steps": [{"services": "nope"}]}, ALLOWED)

    def test_no_steps(self):
        with pytest.raises(ValidationError, match="no steps"):
            validate_plan({"steps": []}, ALLOWED)

    def test_referenced_operations_deduplicated(self):
        plan = ExecutionPlan.model_validate(
            {
                "steps": [
                    {"title": "a", "services": [{"serviceName": "s", "operations": ["Create", "Retrieve"]}]},
                    {"title": "b", "services": [{"serviceName": "s", "operations": ["Retrieve"]}]},
                ]
            }
        )
        assert plan.referenced_operations() == ["Create", "Retrieve"]


class TestPrompts:
    def test_plan_prompt_sections(self):
        prompt = build_plan_prompt("  Fetch order o-1  ", _context())
        assert prompt.index("## Assignment") < prompt.index("## Available context") < prompt.index("## Output format")
        assert "Fetch order o-1\n" in prompt
        assert "- `Retrieve`: GET /orders/{id} - Retrieve an order (service `orders`)" in prompt
        assert "Previous attempt" not in prompt

    def test_plan_prompt_feedback(self):
        feedback = AttemptFeedback(reason="No JSON snippet found in response", raw_output="sorry")
        prompt = build_plan_prompt("Fetch order", _context(), feedback)
        assert "## Previous attempt" in prompt
        assert "The previous attempt failed because: No JSON snippet found in response" in prompt
        assert "Previous output:\nsorry" in prompt

    def test_render_context(self):
        text = render_context(_context())
        assert text.startswith("### Order\nA customer order")
        assert "Fields: id, total" in text
        assert 'Example request: {"id": "o-1"}' in text
        assert "Documentation: Orders guide" in text

    def test_render_empty_context(self):
        assert render_context([]) == "(no context available)"

    def test_extraction_prompt(self):
        prompt = build_extraction_prompt("Show order o-1", {"Order": ["Retrieve", "Write"]})
        assert "## Request\nShow order o-1" in prompt
        assert '"Order": [\n    "Retrieve",\n    "Write"\n  ]' in prompt
        assert "refinedAssignment" in prompt


class TestGenerationLoop:
    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            GenerationLoop(MockLLMClient(), max_attempts=0)

    @pytest.mark.asyncio
    async def test_state_history_on_success(self):
        loop = GenerationLoop(MockLLMClient(responses=['```json\n{"ok": true}\n```']))
        run = await loop.run(lambda feedback: "prompt", json.loads, label="thing")
        assert run.state is GenerationState.SUCCESS
        assert run.result == {"ok": True}
        assert run.history == [
            GenerationState.COMPOSE_PROMPT,
            GenerationState.CALL_MODEL,
            GenerationState.EXTRACT_JSON,
            GenerationState.VALIDATE,
        ]

    @pytest.mark.asyncio
    async def test_blank_response_rejected(self):
        loop = GenerationLoop(MockLLMClient(responses=["   "]), max_attempts=1)
        run = await loop.run(lambda feedback: "prompt", json.loads)
        assert run.state is GenerationState.FAILED
        assert run.last_error == "Did not produce a valid response"

    @pytest.mark.asyncio
    async def test_step_after_finish_raises(self):
        loop = GenerationLoop(MockLLMClient(responses=['```json\n{}\n```']))
        run = await loop.run(lambda feedback: "prompt", json.loads)
        with pytest.raises(RuntimeError):
            await loop.step(run, lambda feedback: "prompt", json.loads)

    @pytest.mark.asyncio
    async def test_llm_exception_propagates(self):
        llm = MockLLMClient(responses=[ConnectionError("offline")])
        loop = GenerationLoop(llm)
        with pytest.raises(ConnectionError):
            await loop.run(lambda feedback: "prompt", json.loads)
        assert llm.call_count == 1


class TestPlanGenerator:
    @pytest.mark.asyncio
    async def test_first_attempt_success(self):
        llm = MockLLMClient(responses=[plan_response("Retrieve")])
        plan = await PlanGenerator(llm, ALLOWED).generate_plan("Fetch order o-1", _context())
        assert plan.referenced_operations() == ["Retrieve"]
        assert llm.call_count == 1

    @pytest.mark.asyncio
    async def test_no_json_exhausts_attempts(self):
        llm = MockLLMClient(responses=["I would rather describe it in prose."])
        with pytest.raises(ExecutionError) as excinfo:
            await PlanGenerator(llm, ALLOWED, max_attempts=3).generate_plan("Fetch order", _context())
        assert llm.call_count == 3
        assert excinfo.value.attempts == 3
        assert "No JSON snippet found in response" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_retry_feeds_back_reason(self):
        llm = MockLLMClient(responses=[plan_response("doesNotExist"), plan_response("Retrieve")])
        run = await PlanGenerator(llm, ALLOWED).run_plan("Fetch order", _context())
        assert run.state is GenerationState.SUCCESS
        assert len(run.attempts) == 2
        assert not run.attempts[0].ok and run.attempts[1].ok
        assert "doesNotExist" in llm.prompts[1]
        assert "The previous attempt failed because: Execution plan references unknown operations" in llm.prompts[1]
        assert "Previous attempt" not in llm.prompts[0]
        assert GenerationState.RETRY_WITH_ERROR in run.history

    @pytest.mark.asyncio
    async def test_failed_run_is_inspectable(self):
        llm = MockLLMClient(responses=[plan_response("doesNotExist")])
        run = await PlanGenerator(llm, ALLOWED, max_attempts=2).run_plan("Fetch order", _context())
        assert run.state is GenerationState.FAILED
        assert run.result is None
        assert [a.number for a in run.attempts] == [1, 2]
        assert run.history[-1] is GenerationState.RETRY_WITH_ERROR

    def test_allowed_operations(self):
        assert PlanGenerator(MockLLMClient(), ["A", "B", "A"]).allowed_operations == frozenset({"A", "B"})
