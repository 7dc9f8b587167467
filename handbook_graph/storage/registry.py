"""
Graph driver provider registry.

Each backend registers a provider exposing ``id()``, ``is_available(config)``
and ``create(config, handbook_name)``. Selection order:

1. the provider named by ``GraphConfig.driver``, if it is available
2. the first provider whose backend-specific configuration is present
3. the in-memory provider

Selection only builds the driver; callers still call ``initialize()``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from handbook_graph.config.settings import GraphConfig
from handbook_graph.errors import ConfigurationError
from handbook_graph.storage.driver import GraphDriver

LOG = logging.getLogger("storage.registry")

MEMORY_PROVIDER_ID = "memory"

# Default storage directory for file-backed drivers configured without a path
STORAGE_DIR_NAME = ".handbook_graph"


class GraphDriverProvider(ABC):
    """Factory for one graph driver backend."""

    @abstractmethod
    def id(self) -> str:
        """Backend identifier used in ``GraphConfig.driver``."""

    @abstractmethod
    def is_available(self, config: GraphConfig) -> bool:
        """True when this backend is requested or configured and can be built."""

    @abstractmethod
    def create(self, config: GraphConfig, handbook_name: str) -> GraphDriver:
        """Build an uninitialized driver."""


class MemoryDriverProvider(GraphDriverProvider):
    def id(self) -> str:
        return MEMORY_PROVIDER_ID

    def is_available(self, config: GraphConfig) -> bool:
        return True

    def create(self, config: GraphConfig, handbook_name: str) -> GraphDriver:
        from handbook_graph.storage.memory_driver import InMemoryGraphDriver

        return InMemoryGraphDriver(handbook_name=handbook_name, enabled=config.enabled)


class SQLiteDriverProvider(GraphDriverProvider):
    def id(self) -> str:
        return "sqlite"

    def is_available(self, config: GraphConfig) -> bool:
        return bool(config.sqlite_path.strip()) or config.driver == self.id()

    def create(self, config: GraphConfig, handbook_name: str) -> GraphDriver:
        from handbook_graph.storage.sqlite_driver import SQLiteGraphDriver

        path = Path(config.sqlite_path) if config.sqlite_path.strip() else Path(STORAGE_DIR_NAME) / "graph.db"
        return SQLiteGraphDriver(path, handbook_name=handbook_name, enabled=config.enabled)


class KuzuDriverProvider(GraphDriverProvider):
    def id(self) -> str:
        return "kuzu"

    def is_available(self, config: GraphConfig) -> bool:
        from handbook_graph.storage import kuzu_driver

        if kuzu_driver.kuzu is None:
            return False
        return bool(config.kuzu_path.strip()) or config.driver == self.id()

    def create(self, config: GraphConfig, handbook_name: str) -> GraphDriver:
        from handbook_graph.storage.kuzu_driver import KuzuGraphDriver

        path = Path(config.kuzu_path) if config.kuzu_path.strip() else Path(STORAGE_DIR_NAME) / "graph.kuzu"
        return KuzuGraphDriver(path, handbook_name=handbook_name, enabled=config.enabled)


class ProviderRegistry:
    """Explicit registry of driver providers keyed by backend id."""

    def __init__(self) -> None:
        self._providers: dict[str, GraphDriverProvider] = {}

    def register(self, provider: GraphDriverProvider) -> None:
        self._providers[provider.id()] = provider

    def get(self, provider_id: str) -> GraphDriverProvider | None:
        return self._providers.get(provider_id)

    def ids(self) -> list[str]:
        return list(self._providers)

    def select(self, config: GraphConfig, handbook_name: str | None = None) -> GraphDriver:
        """
        Pick and build the driver for ``config``.

        Raises:
            ConfigurationError: ``config.driver`` names an unknown backend,
                or no in-memory provider is registered for the fallback
        """
        handbook_name = handbook_name or config.handbook_name
        preferred = config.driver.strip().lower()

        if preferred:
            provider = self._providers.get(preferred)
            if provider is None:
                raise ConfigurationError(
                    f"Unknown graph driver: {preferred!r}. Supported: {', '.join(self.ids())}"
                )
            if provider.is_available(config):
                LOG.info("Using configured graph driver %r", preferred)
                return provider.create(config, handbook_name)
            LOG.warning("Graph driver %r requested but not available, falling back", preferred)

        for provider in self._providers.values():
            if provider.id() != MEMORY_PROVIDER_ID and provider.is_available(config):
                LOG.info("Using graph driver %r (backend configuration present)", provider.id())
                return provider.create(config, handbook_name)

        fallback = self._providers.get(MEMORY_PROVIDER_ID)
        if fallback is None:
            raise ConfigurationError("No graph driver available and no in-memory provider registered")
        LOG.info("Using in-memory graph driver")
        return fallback.create(config, handbook_name)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(MemoryDriverProvider())
    registry.register(SQLiteDriverProvider())
    registry.register(KuzuDriverProvider())
    return registry


DEFAULT_REGISTRY = default_registry()


def select_driver(
    config: GraphConfig,
    handbook_name: str | None = None,
    registry: ProviderRegistry | None = None,
) -> GraphDriver:
    """Factory: build the graph driver selected for ``config``."""
    return (registry or DEFAULT_REGISTRY).select(config, handbook_name)
