"""Environment-driven configuration."""

from handbook_graph.config.settings import (
    AppConfig,
    ChunkingConfig,
    GraphConfig,
    LLMConfig,
    PlanningConfig,
    parse_bool,
)

__all__ = [
    "AppConfig",
    "ChunkingConfig",
    "GraphConfig",
    "LLMConfig",
    "PlanningConfig",
    "parse_bool",
]
