"""
LLM clients used by extraction and plan generation.

The pipeline treats the model as an opaque ``generate(prompt) -> text``
capability; backends are selected with ``build_llm_client``.
"""

from __future__ import annotations

from handbook_graph.config.settings import LLMConfig
from handbook_graph.errors import ConfigurationError
from handbook_graph.llm.client import LLMClient, MockLLMClient


def build_llm_client(config: LLMConfig) -> LLMClient:
    """
    Factory: create an LLMClient of the configured backend type.

    Raises:
        ConfigurationError: Unknown backend, or cloud backend without API key
    """
    if config.backend == "mock":
        return MockLLMClient()
    if config.backend == "cloud":
        from handbook_graph.llm.cloud import CloudLLMClient

        try:
            return CloudLLMClient.from_config(config)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    raise ConfigurationError(f"Unknown LLM backend: {config.backend!r}. Supported: 'cloud', 'mock'")


__all__ = [
    "LLMClient",
    "MockLLMClient",
    "build_llm_client",
]
