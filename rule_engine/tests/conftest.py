"""
Shared fixtures for rule engine unit tests.
"""

import pytest

from shared.config import get_settings

from rule_engine.context import Context
from rule_engine.packages import CorePackage, PackageRegistry
from rule_engine.rules.handlers import HandlerRegistry


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Each test reads settings from a clean environment."""
    for name in ("RULES_DEFAULT_EVENT", "RULES_DEFAULT_EVENT_PRIORITY", "RULES_DEFAULT_RULE_ORDER"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def handlers():
    """Handler registry with the core handlers registered."""
    registry = HandlerRegistry()
    CorePackage().register_handlers(registry)
    return registry


@pytest.fixture
def registry():
    """Package registry with only the core package loaded."""
    registry = PackageRegistry()
    registry.register(CorePackage())
    registry.load_packages()
    return registry


@pytest.fixture
def context():
    return Context({"request": {"method": "POST", "uri": "/blog/post-1"}})
