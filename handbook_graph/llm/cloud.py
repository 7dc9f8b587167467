"""
Hosted LLM backend speaking the Anthropic messages API or the OpenAI chat
completions API over httpx.

The API key comes from ``api_key=`` or the HANDBOOK_GRAPH_LLM_API_KEY
environment variable.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Sequence
from typing import Any, Optional

import httpx

from handbook_graph.config.settings import LLMConfig
from handbook_graph.llm.client import LLMClient, Message, ResponseListener, ToolSpec

LOG = logging.getLogger("llm.cloud")

API_KEY_ENV = "HANDBOOK_GRAPH_LLM_API_KEY"
ANTHROPIC_VERSION = "2023-06-01"

DEFAULT_BASE_URLS = {
    "anthropic": "https://api.anthropic.com/v1",
    "openai": "https://api.openai.com/v1",
}


class CloudLLMClient(LLMClient):
    """
    Planning and extraction prompts sent to a hosted model.

    Requests are spaced at least ``1 / requests_per_second`` apart. Transport
    and HTTP status errors are retried with exponential backoff (1s, 2s,
    4s, ...); when every retry fails the empty string is returned, which the
    generation loop treats as a rejected attempt.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        provider: str = "anthropic",
        model: str = "claude-sonnet-4-5-20250929",
        base_url: Optional[str] = None,
        max_retries: int = 3,
        requests_per_second: float = 5.0,
        timeout: float = 60.0,
        max_tokens: int = 4000,
    ) -> None:
        self._api_key = api_key or os.environ.get(API_KEY_ENV, "")
        if not self._api_key:
            raise ValueError(f"API key required. Set {API_KEY_ENV} or pass api_key=.")
        if provider not in DEFAULT_BASE_URLS:
            raise ValueError(
                f"Unknown LLM provider: {provider!r}. Supported: {', '.join(sorted(DEFAULT_BASE_URLS))}"
            )

        self._provider = provider
        self._model = model
        self._max_retries = max(1, max_retries)
        self._max_tokens = max_tokens
        self._spacing = 1.0 / requests_per_second
        self._sent_at = 0.0
        self._base_url = base_url or DEFAULT_BASE_URLS[provider]
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "CloudLLMClient":
        return cls(
            api_key=config.api_key or None,
            provider=config.provider,
            model=config.model,
            base_url=config.base_url or None,
            timeout=config.timeout_seconds,
        )

    async def generate(
        self,
        prompt: str,
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        return await self.chat([{"role": "user", "content": prompt}], tools, cacheable, listener)

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        cacheable: bool = False,
        listener: Optional[ResponseListener] = None,
    ) -> str:
        await self._throttle()
        text = await self._send_with_retry(list(messages), list(tools), cacheable)
        self._sent_at = time.monotonic()
        if listener is not None:
            listener(text)
        return text

    async def close(self) -> None:
        await self._client.aclose()

    async def _throttle(self) -> None:
        wait = self._spacing - (time.monotonic() - self._sent_at)
        if wait > 0:
            await asyncio.sleep(wait)

    async def _send_with_retry(self, messages: list[Message], tools: list[ToolSpec], cacheable: bool) -> str:
        send = self._send_anthropic if self._provider == "anthropic" else self._send_openai
        for attempt in range(1, self._max_retries + 1):
            try:
                return await send(messages, tools, cacheable)
            except httpx.HTTPError as exc:
                backoff = 2 ** (attempt - 1)
                LOG.warning(
                    "%s request failed (%d/%d): %s; backing off %ds",
                    self._provider,
                    attempt,
                    self._max_retries,
                    exc,
                    backoff,
                )
                await asyncio.sleep(backoff)
        return ""

    async def _post(self, path: str, headers: dict[str, str], body: dict[str, Any]) -> Any:
        response = await self._client.post(path, headers=headers, json=body)
        response.raise_for_status()
        return response.json()

    async def _send_anthropic(self, messages: list[Message], tools: list[ToolSpec], cacheable: bool) -> str:
        system = "\n\n".join(str(m["content"]) for m in messages if m.get("role") == "system")
        turns: list[dict[str, Any]] = [
            {"role": m["role"], "content": m["content"]} for m in messages if m.get("role") != "system"
        ]
        if cacheable and turns:
            # prompt caching applies to the block carrying cache_control
            turns[-1]["content"] = [
                {"type": "text", "text": str(turns[-1]["content"]), "cache_control": {"type": "ephemeral"}}
            ]
        body: dict[str, Any] = {"model": self._model, "max_tokens": self._max_tokens, "messages": turns}
        if system:
            body["system"] = system
        if tools:
            body["tools"] = tools
        data = await self._post(
            "/messages",
            {"x-api-key": self._api_key, "anthropic-version": ANTHROPIC_VERSION},
            body,
        )
        blocks = data.get("content", [])
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")

    async def _send_openai(self, messages: list[Message], tools: list[ToolSpec], cacheable: bool) -> str:
        body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }
        if tools:
            body["tools"] = tools
        data = await self._post("/chat/completions", {"Authorization": f"Bearer {self._api_key}"}, body)
        choices = data.get("choices") or [{}]
        return choices[0].get("message", {}).get("content") or ""
