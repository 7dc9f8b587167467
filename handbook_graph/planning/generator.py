"""
Bounded generate/validate/retry loop.

Each attempt walks an explicit state machine:

    COMPOSE_PROMPT -> CALL_MODEL -> EXTRACT_JSON -> VALIDATE -> SUCCESS
                          |              |             |
                          +--------------+-------------+--> RETRY_WITH_ERROR
                                                               |
                                   COMPOSE_PROMPT <------------+--> FAILED

The rejection reason and raw output of a failed attempt are fed into the
next prompt. Retries are immediate. After ``max_attempts`` rejected
attempts the loop fails with ExecutionError carrying the last reason.
Exceptions raised by the model client itself are not retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from handbook_graph.errors import ExecutionError, ValidationError
from handbook_graph.llm.client import LLMClient
from handbook_graph.planning.models import ExecutionPlan
from handbook_graph.planning.prompt import AttemptFeedback, build_plan_prompt
from handbook_graph.planning.validation import extract_json_snippet, validate_plan
from handbook_graph.retrieval.models import ContextRecord

LOG = logging.getLogger("planning.generator")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
NO_RESPONSE = "Did not produce a valid response"
NO_JSON = "No JSON snippet found in response"


class GenerationState(str, Enum):
    COMPOSE_PROMPT = "compose_prompt"
    CALL_MODEL = "call_model"
    EXTRACT_JSON = "extract_json"
    VALIDATE = "validate"
    RETRY_WITH_ERROR = "retry_with_error"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = frozenset({GenerationState.SUCCESS, GenerationState.FAILED})


@dataclass
class GenerationAttempt:
    number: int
    prompt: str = ""
    raw_output: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class GenerationRun(Generic[T]):
    """Mutable state of one generation loop; inspectable after it ends."""

    label: str
    max_attempts: int
    state: GenerationState = GenerationState.COMPOSE_PROMPT
    attempts: List[GenerationAttempt] = field(default_factory=list)
    history: List[GenerationState] = field(default_factory=list)
    feedback: Optional[AttemptFeedback] = None
    snippet: Optional[str] = None
    result: Optional[T] = None

    @property
    def current(self) -> GenerationAttempt:
        return self.attempts[-1]

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.error is not None:
                return attempt.error
        return None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES


class GenerationLoop:
    """Drives a GenerationRun through the state machine against one LLM."""

    def __init__(self, llm: LLMClient, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._llm = llm
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def run(
        self,
        compose: Callable[[Optional[AttemptFeedback]], str],
        validate: Callable[[str], T],
        label: str = "result",
    ) -> GenerationRun[T]:
        """Run to a terminal state. Never raises for rejected output."""
        run: GenerationRun[T] = GenerationRun(label=label, max_attempts=self._max_attempts)
        while not run.done:
            await self.step(run, compose, validate)
        return run

    async def step(
        self,
        run: GenerationRun[T],
        compose: Callable[[Optional[AttemptFeedback]], str],
        validate: Callable[[str], T],
    ) -> GenerationState:
        """Advance ``run`` by one state and return the new state."""
        state = run.state
        run.history.append(state)

        if state is GenerationState.COMPOSE_PROMPT:
            run.attempts.append(GenerationAttempt(number=len(run.attempts) + 1, prompt=compose(run.feedback)))
            run.snippet = None
            run.state = GenerationState.CALL_MODEL

        elif state is GenerationState.CALL_MODEL:
            raw = await self._llm.generate(run.current.prompt)
            if not isinstance(raw, str) or not raw.strip():
                self._reject(run, NO_RESPONSE)
            else:
                run.current.raw_output = raw
                run.state = GenerationState.EXTRACT_JSON

        elif state is GenerationState.EXTRACT_JSON:
            run.snippet = extract_json_snippet(run.current.raw_output)
            if run.snippet is None:
                self._reject(run, NO_JSON)
            else:
                run.state = GenerationState.VALIDATE

        elif state is GenerationState.VALIDATE:
            try:
                run.result = validate(run.snippet or "")
            except ValidationError as exc:
                self._reject(run, str(exc))
            else:
                LOG.info("Generated %s on attempt %d/%d", run.label, run.current.number, run.max_attempts)
                run.state = GenerationState.SUCCESS

        elif state is GenerationState.RETRY_WITH_ERROR:
            run.feedback = AttemptFeedback(reason=run.current.error or "", raw_output=run.current.raw_output)
            if len(run.attempts) < run.max_attempts:
                run.state = GenerationState.COMPOSE_PROMPT
            else:
                LOG.warning(
                    "Giving up on %s after %d attempts: %s", run.label, len(run.attempts), run.last_error
                )
                run.state = GenerationState.FAILED

        else:
            raise RuntimeError(f"Generation run already finished in state {state.value}")

        return run.state

    @staticmethod
    def _reject(run: GenerationRun, reason: str) -> None:
        LOG.debug("Attempt %d for %s rejected: %s", run.current.number, run.label, reason)
        run.current.error = reason
        run.state = GenerationState.RETRY_WITH_ERROR


def raise_for_failure(run: GenerationRun[T]) -> T:
    """Return the run's result, or raise ExecutionError if it failed."""
    if run.state is GenerationState.SUCCESS and run.result is not None:
        return run.result
    raise ExecutionError(
        f"Failed to generate {run.label} after {len(run.attempts)} attempts: {run.last_error}",
        attempts=len(run.attempts),
    )


class PlanGenerator:
    """
    Turns an assignment plus retrieved context into a validated ExecutionPlan.

    ``allowed_operations`` is the handbook's operation-id set; plans naming
    anything else are rejected and retried.
    """

    def __init__(
        self,
        llm: LLMClient,
        allowed_operations: Iterable[str],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._loop = GenerationLoop(llm, max_attempts)
        self._allowed = frozenset(allowed_operations)

    @property
    def allowed_operations(self) -> frozenset[str]:
        return self._allowed

    async def run_plan(self, intent: str, context: Sequence[ContextRecord]) -> GenerationRun[ExecutionPlan]:
        return await self._loop.run(
            lambda feedback: build_plan_prompt(intent, context, feedback),
            lambda snippet: validate_plan(snippet, self._allowed),
            label="execution plan",
        )

    async def generate_plan(self, intent: str, context: Sequence[ContextRecord]) -> ExecutionPlan:
        """
        Generate a plan, retrying with feedback on rejected output.

        Raises:
            ExecutionError: every attempt was rejected
        """
        run = await self.run_plan(intent, context)
        return raise_for_failure(run)
