"""
Host-agnostic rule engine.

Rules are evaluated against a Context assembled from packages. A typical
setup registers the bundled packages and loads them once:

    registry = create_registry(environ=request.environ)
    RuleBuilder.create("posts").when_all().request_method("POST") \\
        .then().log("posted").register(registry)
    registry.execute_rules()
"""

from typing import Optional

from shared.config import EngineSettings, get_settings
from shared.logging import configure_logging
from shared.metrics import MetricsCollector

from .context import Context
from .packages import (
    BasePackage, CorePackage, HookGateway, HookState, InMemoryEventHost,
    PackageRegistry, RequestPackage
)
from .packages.hooks import EventHost
from .packages.request import EnvironSource
from .rules.builder import RuleBuilder
from .rules.engine import RuleEngine
from .rules.handlers import HandlerRegistry
from .rules.models import Action, Condition, ExecutionResult, MatchType, Rule
from .rules.operators import compare
from .rules.placeholders import PlaceholderResolver


def configure(settings: Optional[EngineSettings] = None) -> EngineSettings:
    """Configure logging for the host process from engine settings."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.effective_log_level,
        json=settings.log_json,
        rate_limit_seconds=settings.log_rate_limit_seconds,
    )
    return settings


def create_registry(
    environ: EnvironSource = None,
    host: Optional[EventHost] = None,
    metrics: Optional[MetricsCollector] = None,
) -> PackageRegistry:
    """Registry with the core, request and hook packages registered and loaded."""
    if metrics is None and get_settings().enable_metrics:
        metrics = MetricsCollector("rule_engine")

    registry = PackageRegistry(metrics=metrics)
    registry.register(CorePackage())
    registry.register(RequestPackage(environ))
    registry.register(HookGateway(host))
    registry.load_packages()
    return registry


__all__ = [
    "Action",
    "BasePackage",
    "Condition",
    "Context",
    "CorePackage",
    "ExecutionResult",
    "HandlerRegistry",
    "HookGateway",
    "HookState",
    "InMemoryEventHost",
    "MatchType",
    "PackageRegistry",
    "PlaceholderResolver",
    "RequestPackage",
    "Rule",
    "RuleBuilder",
    "RuleEngine",
    "compare",
    "configure",
    "create_registry",
]
