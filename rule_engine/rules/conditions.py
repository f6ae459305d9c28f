"""
Condition handlers.

A handler is built from ``(config, context, resolver)`` and answers
``matches(context)``. Concrete conditions only supply the actual value;
operator semantics live in :mod:`rule_engine.rules.operators`.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from shared.logging import get_logger

from ..context import Context
from .models import Condition
from .operators import evaluate, compare
from .placeholders import PlaceholderResolver

logger = get_logger("rule_engine.conditions")

Extractor = Callable[[Condition, Context], Any]
ConditionCallback = Callable[[Dict[str, Any], Context], Any]


class BaseCondition(ABC):
    """Base class for conditions comparing one value from the context."""

    # How positional builder arguments map onto config keys
    argument_mapping: Tuple[str, ...] = ("value",)

    def __init__(self, config: Condition, context: Context, resolver: Optional[PlaceholderResolver] = None):
        self.config = config
        self.operator = config.operator
        self.value = config.value
        self.match_type = config.match_type
        self.resolver = resolver or PlaceholderResolver(context)

    @abstractmethod
    def get_type(self) -> str:
        """Condition type name."""

    @abstractmethod
    def get_actual_value(self, context: Context) -> Any:
        """Extract the value to compare from the context."""

    def matches(self, context: Context) -> bool:
        actual = self.get_actual_value(context)
        return evaluate(actual, self.value, self.operator, self.resolver.resolve)

    def compare(self, actual: Any, expected: Any) -> bool:
        return compare(actual, expected, self.operator)


class ExtractorCondition(BaseCondition):
    """Condition whose actual value comes from a pluggable extractor."""

    def __init__(
        self,
        type_name: str,
        extractor: Extractor,
        config: Condition,
        context: Context,
        resolver: Optional[PlaceholderResolver] = None,
    ):
        super().__init__(config, context, resolver)
        self.type_name = type_name
        self.extractor = extractor

    def get_type(self) -> str:
        return self.type_name

    def get_actual_value(self, context: Context) -> Any:
        return self.extractor(self.config, context)


def extractor_condition(type_name: str, extractor: Extractor, argument_mapping: Tuple[str, ...] = ("value",)):
    """Build a condition factory from an extractor function."""
    def factory(config: Condition, context: Context, resolver: Optional[PlaceholderResolver] = None):
        return ExtractorCondition(type_name, extractor, config, context, resolver)

    factory.handler_type = type_name
    factory.argument_mapping = argument_mapping
    return factory


class CallbackCondition:
    """Condition registered as a plain function ``fn(config, context)``."""

    def __init__(self, type_name: str, callback: ConditionCallback, config: Condition, context: Context):
        self.type_name = type_name
        self.callback = callback
        self.config = config
        self.context = context

    def get_type(self) -> str:
        return self.type_name

    def matches(self, context: Context) -> bool:
        return bool(self.callback(self.config.to_config(), context))


def context_path_value(config: Condition, context: Context) -> Any:
    """Actual value of the core ``context`` condition: a dotted path."""
    path = config.name or config.get("path") or ""
    if not path:
        return None
    return context.get(path)


class ContextCondition(ExtractorCondition):
    """Compares the value found at ``name`` (a dotted context path)."""

    argument_mapping = ("name", "value")

    def __init__(self, config: Condition, context: Context, resolver: Optional[PlaceholderResolver] = None):
        super().__init__("context", context_path_value, config, context, resolver)
