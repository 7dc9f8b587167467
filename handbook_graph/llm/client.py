"""
Abstract LLM client.

Defines the LLMClient ABC and MockLLMClient for testing. The cloud backend
lives in cloud.py. The planning pipeline only relies on ``generate`` and
``chat`` returning text that may contain a fenced JSON block.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable, Sequence
from typing import Any, Optional

LOG = logging.getLogger("llm.client")

# Tool definitions are passed through to the provider untouched
ToolSpec = dict[str, Any]
Message = dict[str, Any]  # {"role": "user" | "assistant" | "system", "content": str}
ResponseListener = Callable[[str], None]


class LLMClient(abc.ABC):
    """Abstract base class for text generation backends."""

    @abc.abstractmethod
    async def generate(
        self,
        prompt: str,
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        """
        Generate a completion for a single prompt.

        ``cacheable`` marks the prompt as eligible for provider-side prompt
        caching. ``listener`` is called with the final text.
        """
        ...

    @abc.abstractmethod
    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        """Generate the next assistant message for a conversation."""
        ...

    async def close(self) -> None:
        """Clean up resources (e.g., HTTP clients). Override if needed."""
        pass


class MockLLMClient(LLMClient):
    """
    Mock LLM client for testing.

    Returns canned responses in order, cycling when exhausted. A response
    that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses: Optional[list[Any]] = None) -> None:
        self._responses = responses or []
        self._call_count = 0
        self.prompts: list[str] = []

    def _next(self, prompt: str, listener: Optional[ResponseListener]) -> str:
        self._call_count += 1
        self.prompts.append(prompt)
        if not self._responses:
            LOG.debug("MockLLMClient has no canned responses; returning empty text")
            return ""
        response = self._responses[(self._call_count - 1) % len(self._responses)]
        if isinstance(response, BaseException):
            LOG.debug("MockLLMClient raising canned %s", type(response).__name__)
            raise response
        if listener is not None:
            listener(response)
        return response

    async def generate(
        self,
        prompt: str,
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        return self._next(prompt, listener)

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        prompt = str(messages[-1].get("content", "")) if messages else ""
        return self._next(prompt, listener)

    @property
    def call_count(self) -> int:
        return self._call_count
