"""
Graph storage layer for handbook-graph.

Provides:
- GraphDriver: abstract driver with in-memory, SQLite and Kuzu backends
- ProviderRegistry / select_driver: capability-based backend selection
"""

from handbook_graph.storage.driver import GraphDriver
from handbook_graph.storage.memory_driver import InMemoryGraphDriver
from handbook_graph.storage.registry import (
    DEFAULT_REGISTRY,
    GraphDriverProvider,
    ProviderRegistry,
    default_registry,
    select_driver,
)

__all__ = [
    "DEFAULT_REGISTRY",
    "GraphDriver",
    "GraphDriverProvider",
    "InMemoryGraphDriver",
    "ProviderRegistry",
    "default_registry",
    "select_driver",
]
