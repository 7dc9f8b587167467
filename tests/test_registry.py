"""Tests for storage.registry: capability-based driver selection."""

import pytest

from handbook_graph.config.settings import GraphConfig
from handbook_graph.errors import ConfigurationError
from handbook_graph.storage import kuzu_driver
from handbook_graph.storage.driver import GraphDriver
from handbook_graph.storage.memory_driver import InMemoryGraphDriver
from handbook_graph.storage.registry import (
    GraphDriverProvider,
    MemoryDriverProvider,
    ProviderRegistry,
    default_registry,
    select_driver,
)
from handbook_graph.storage.sqlite_driver import SQLiteGraphDriver


class _UnavailableProvider(GraphDriverProvider):
    def id(self):
        return "remote"

    def is_available(self, config):
        return False

    def create(self, config, handbook_name):
        raise AssertionError("must not be created")


class TestSelection:
    def test_default_is_memory(self):
        driver = select_driver(GraphConfig())
        assert isinstance(driver, InMemoryGraphDriver)
        assert driver.handbook_name == "handbook"
        assert not driver.is_initialized()

    def test_handbook_name_override(self):
        driver = select_driver(GraphConfig(handbook_name="from-config"), handbook_name="explicit")
        assert driver.handbook_name == "explicit"

    def test_sqlite_path_selects_sqlite(self, tmp_path):
        driver = select_driver(GraphConfig(sqlite_path=str(tmp_path / "g.db")))
        assert isinstance(driver, SQLiteGraphDriver)

    def test_preferred_driver(self, tmp_path):
        config = GraphConfig(driver="memory", sqlite_path=str(tmp_path / "g.db"))
        assert isinstance(select_driver(config), InMemoryGraphDriver)

    def test_unknown_driver_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown graph driver"):
            select_driver(GraphConfig(driver="neo4j"))

    def test_unavailable_preferred_falls_back(self):
        registry = ProviderRegistry()
        registry.register(MemoryDriverProvider())
        registry.register(_UnavailableProvider())
        driver = registry.select(GraphConfig(driver="remote"))
        assert isinstance(driver, InMemoryGraphDriver)

    def test_no_fallback_registered(self):
        registry = ProviderRegistry()
        registry.register(_UnavailableProvider())
        with pytest.raises(ConfigurationError):
            registry.select(GraphConfig())

    def test_disabled_flag_propagates(self):
        driver = select_driver(GraphConfig(enabled=False))
        driver.initialize()
        assert driver.is_initialized() is False

    def test_kuzu_unavailable_without_package(self, monkeypatch, tmp_path):
        monkeypatch.setattr(kuzu_driver, "kuzu", None)
        driver = select_driver(GraphConfig(kuzu_path=str(tmp_path / "g.kuzu")))
        assert isinstance(driver, InMemoryGraphDriver)

    def test_default_registry_ids(self):
        assert default_registry().ids() == ["memory", "sqlite", "kuzu"]

    def test_selected_driver_is_graph_driver(self, tmp_path):
        assert isinstance(select_driver(GraphConfig(driver="sqlite", sqlite_path=str(tmp_path / "g.db"))), GraphDriver)
