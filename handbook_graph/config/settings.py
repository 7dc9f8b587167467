"""Configuration management for handbook-graph.

Loads settings from environment variables with sensible defaults.
All variables share the ``HANDBOOK_GRAPH_`` prefix.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from handbook_graph.errors import ConfigurationError

ENV_PREFIX = "HANDBOOK_GRAPH_"

_TRUE_VALUES = {"true", "yes", "1", "on"}
_FALSE_VALUES = {"false", "no", "0", "off"}


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default)


def parse_bool(value: str | None) -> bool | None:
    """Parse a boolean flag; returns None for blank or missing values."""
    if value is None or not value.strip():
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value: {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    parsed = parse_bool(_env(name))
    return default if parsed is None else parsed


@dataclass
class GraphConfig:
    """Graph storage backend configuration."""
    driver: str = ""  # "", "memory", "sqlite", "kuzu"; empty = auto-select
    enabled: bool = True
    sqlite_path: str = ""  # presence selects the sqlite backend
    kuzu_path: str = ""  # presence selects the kuzu backend
    clear_on_startup: bool = True
    handbook_name: str = "handbook"

    @classmethod
    def from_env(cls) -> "GraphConfig":
        return cls(
            driver=_env("GRAPH_DRIVER").strip().lower(),
            enabled=_env_bool("GRAPH_ENABLED", True),
            sqlite_path=_env("GRAPH_SQLITE_PATH"),
            kuzu_path=_env("GRAPH_KUZU_PATH"),
            clear_on_startup=_env_bool("GRAPH_CLEAR_ON_STARTUP", True),
            handbook_name=_env("HANDBOOK_NAME", "handbook"),
        )


@dataclass
class ChunkingConfig:
    """
    Document chunking configuration.

    ``enabled`` is the global switch; ``overrides`` maps a document type
    (e.g. "openapi", "markdown") to a raw flag value. A blank override is
    treated as unset and falls back to the global switch.
    """
    enabled: bool = True
    overrides: dict[str, str] = field(default_factory=dict)
    min_size: int = 300
    target_size: int = 800
    max_size: int = 1500

    def __post_init__(self) -> None:
        if not 0 < self.min_size <= self.target_size <= self.max_size:
            raise ConfigurationError(
                "chunk sizes must satisfy 0 < min <= target <= max, got "
                f"{self.min_size}/{self.target_size}/{self.max_size}"
            )

    def is_enabled(self, doc_type: str) -> bool:
        override = parse_bool(self.overrides.get(doc_type.strip().lower()))
        return self.enabled if override is None else override

    @classmethod
    def from_env(cls) -> "ChunkingConfig":
        overrides: dict[str, str] = {}
        marker = ENV_PREFIX + "CHUNKING_"
        for name, value in os.environ.items():
            if name.startswith(marker) and name.endswith("_ENABLED") and name != marker + "ENABLED":
                doc_type = name[len(marker):-len("_ENABLED")].lower()
                overrides[doc_type] = value
        return cls(
            enabled=_env_bool("CHUNKING_ENABLED", True),
            overrides=overrides,
            min_size=int(_env("CHUNKING_MIN_SIZE", "300")),
            target_size=int(_env("CHUNKING_TARGET_SIZE", "800")),
            max_size=int(_env("CHUNKING_MAX_SIZE", "1500")),
        )


@dataclass
class LLMConfig:
    """LLM backend configuration."""
    backend: str = "mock"  # "cloud", "mock"
    provider: str = "anthropic"  # "anthropic" or "openai"
    model: str = "claude-sonnet-4-5-20250929"
    base_url: str = ""
    api_key: str = ""
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        return cls(
            backend=_env("LLM_BACKEND", "mock"),
            provider=_env("LLM_PROVIDER", "anthropic"),
            model=_env("LLM_MODEL", "claude-sonnet-4-5-20250929"),
            base_url=_env("LLM_BASE_URL"),
            api_key=_env("LLM_API_KEY"),
            timeout_seconds=float(_env("LLM_TIMEOUT_SECONDS", "60")),
        )


@dataclass
class PlanningConfig:
    """Plan generation and request handling configuration."""
    max_attempts: int = 3
    request_timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )

    @classmethod
    def from_env(cls) -> "PlanningConfig":
        return cls(
            max_attempts=int(_env("PLAN_MAX_ATTEMPTS", "3")),
            request_timeout_seconds=float(_env("REQUEST_TIMEOUT_SECONDS", "120")),
        )


@dataclass
class AppConfig:
    """Top-level application configuration."""
    graph: GraphConfig = field(default_factory=GraphConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    planning: PlanningConfig = field(default_factory=PlanningConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            graph=GraphConfig.from_env(),
            chunking=ChunkingConfig.from_env(),
            llm=LLMConfig.from_env(),
            planning=PlanningConfig.from_env(),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )
