"""
Shared pytest fixtures for record-spine tests.

This module provides:
- A fresh ``EntityMappingRegistry`` per test (no shared mapping state)
- In-memory fake connections and record stores (sync and async)
- A cleared ``get_settings`` cache around every test

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(registry, store, connection):
        ...
"""

from __future__ import annotations

from typing import Generator

import pytest

from recordspine.core.mapping import EntityMappingRegistry
from recordspine.core.settings import clear_settings_cache
from tests._support.entities import Gadget, OrderLine, Tag, Widget
from tests._support.fakes import (
    AsyncFakeConnection,
    AsyncFakeRecordStore,
    FakeConnection,
    FakeRecordStore,
)


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def registry() -> EntityMappingRegistry:
    """Registry with mappings for every keyed test entity."""
    r = EntityMappingRegistry()
    r.register(Widget, "widgets", ["Id"])
    r.register(Gadget, "gadgets", ["Code"])
    r.register(OrderLine, "order_lines", ["OrderId", "LineNo"])
    r.register(Tag, "tags", ["Name"])
    return r


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def async_connection() -> AsyncFakeConnection:
    return AsyncFakeConnection()


@pytest.fixture
def async_store() -> AsyncFakeRecordStore:
    return AsyncFakeRecordStore()
