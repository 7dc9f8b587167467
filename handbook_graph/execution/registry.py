"""
Operation registry: maps plan operation ids to invokable handlers.

Handlers are registered either under a qualified ``service.operation`` key
or under the bare operation id; lookup prefers the qualified key.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

LOG = logging.getLogger("execution.registry")

# (OperationInput) -> output, or an awaitable of the output
OperationInvoker = Callable[[Any], Union[Any, Awaitable[Any]]]


def qualified_key(service: str, operation: str) -> str:
    return f"{service}.{operation}" if service else operation


class OperationRegistry:
    def __init__(self) -> None:
        self._invokers: Dict[str, OperationInvoker] = {}

    def register(self, operation_key: str, invoker: OperationInvoker) -> None:
        if not operation_key:
            raise ValueError("operation_key must be non-empty")
        if not callable(invoker):
            raise TypeError(f"Invoker for {operation_key!r} is not callable")
        if operation_key in self._invokers:
            LOG.debug("Replacing invoker for %s", operation_key)
        self._invokers[operation_key] = invoker

    def get(self, service: str, operation: str) -> Optional[OperationInvoker]:
        return self._invokers.get(qualified_key(service, operation)) or self._invokers.get(operation)

    def operation_ids(self) -> List[str]:
        return sorted(self._invokers)

    def __contains__(self, operation_key: object) -> bool:
        return operation_key in self._invokers

    def __len__(self) -> int:
        return len(self._invokers)
