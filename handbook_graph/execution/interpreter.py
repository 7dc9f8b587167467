"""
Plan interpreter.

Walks a validated ExecutionPlan step by step, invoking each referenced
operation through the OperationRegistry. Operations run strictly in plan
order; each one sees the previous output and the request's value store.
The first failure aborts the plan and clears the value store. Invocations
are never retried here. Synchronous handlers run in a worker
thread, off the event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from handbook_graph.errors import ExecutionError, NotFoundError, compact_cause
from handbook_graph.execution.registry import OperationRegistry, qualified_key
from handbook_graph.execution.value_store import ValueStore
from handbook_graph.planning.models import ExecutionPlan, PlanStep

LOG = logging.getLogger("execution.interpreter")


@dataclass(frozen=True)
class OperationInput:
    """What an invoker receives for one operation call."""

    step: PlanStep
    service_name: str
    operation_id: str
    previous: Any
    values: ValueStore


@dataclass
class ExecutionResult:
    output: Any = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    operations_run: List[str] = field(default_factory=list)
    duration_ms: int = 0


class PlanInterpreter:
    """Stateless; a single instance may serve concurrent requests."""

    async def execute(
        self,
        plan: ExecutionPlan,
        registry: OperationRegistry,
        value_store: Optional[ValueStore] = None,
    ) -> ExecutionResult:
        """
        Execute ``plan`` and return the last operation's output verbatim.

        Raises:
            ExecutionError: an operation had no handler or its handler
                raised; carries the operation, service and step title
        """
        store = value_store if value_store is not None else ValueStore()
        start = time.monotonic()
        result = ExecutionResult()
        previous: Any = None

        for index, step in enumerate(plan.steps, 1):
            LOG.debug("Executing step %d/%d: %s", index, len(plan.steps), step.title)
            for service in step.services:
                for operation_id in service.operations:
                    key = qualified_key(service.serviceName, operation_id)
                    try:
                        previous = await self._invoke(step, service.serviceName, operation_id, previous, registry, store)
                    except Exception as exc:
                        store.clear()
                        LOG.warning("Plan aborted at %s in step %r: %s", key, step.title, exc)
                        raise ExecutionError(
                            f"Operation {key} failed in step {step.title!r}: {compact_cause(exc)}",
                            operation=operation_id,
                            service=service.serviceName,
                            step=step.title,
                        ) from exc
                    store.put(key, previous, description=f"Output of {key} ({step.title})")
                    result.outputs[key] = previous
                    result.operations_run.append(key)

        result.output = previous
        result.duration_ms = int((time.monotonic() - start) * 1000)
        LOG.info("Executed %d operations in %dms", len(result.operations_run), result.duration_ms)
        return result

    @staticmethod
    async def _invoke(
        step: PlanStep,
        service_name: str,
        operation_id: str,
        previous: Any,
        registry: OperationRegistry,
        store: ValueStore,
    ) -> Any:
        invoker = registry.get(service_name, operation_id)
        if invoker is None:
            raise NotFoundError(f"No handler registered for operation {qualified_key(service_name, operation_id)}")
        op_input = OperationInput(step, service_name, operation_id, previous, store)
        if _is_async(invoker):
            output = invoker(op_input)
        else:
            output = await asyncio.to_thread(invoker, op_input)
        if inspect.isawaitable(output):
            output = await output
        return output


def _is_async(invoker: Any) -> bool:
    return inspect.iscoroutinefunction(invoker) or inspect.iscoroutinefunction(getattr(invoker, "__call__", None))
