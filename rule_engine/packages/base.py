"""
Base class for context-providing packages.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

from shared.logging import get_logger

from ..context import deep_merge
from ..rules.handlers import HandlerRegistry
from ..rules.models import Rule
from ..rules.placeholders import CategoryResolver

if TYPE_CHECKING:
    from .registry import PackageRegistry

FragmentProvider = Callable[[], Mapping[str, Any]]


class BasePackage(ABC):
    """A named bundle of context fragments, handlers and rules.

    Subclasses must provide ``name``, ``namespaces`` and ``is_available``;
    everything else has a usable default.
    """

    def __init__(self):
        self.logger = get_logger(f"rule_engine.packages.{self.name}")
        self.registry: Optional["PackageRegistry"] = None
        self._rules: List[Rule] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique package name."""

    @property
    @abstractmethod
    def namespaces(self) -> List[str]:
        """Capability namespaces contributed by this package."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the package can run in the current environment."""

    def required_packages(self) -> List[str]:
        return []

    # Context

    def context_providers(self) -> Dict[str, FragmentProvider]:
        """Lazy builders per top-level category; each returns ``{category: ...}``."""
        return {}

    def build_context_fragment(self) -> Dict[str, Any]:
        """Eagerly build every category this package contributes."""
        fragment: Dict[str, Any] = {}
        for provider in self.context_providers().values():
            result = provider()
            if isinstance(result, Mapping):
                fragment = deep_merge(fragment, result)
        return fragment

    # Handlers

    def register_handlers(self, handlers: HandlerRegistry) -> None:
        """Register this package's condition/action factories."""

    def placeholder_resolvers(self) -> Dict[str, CategoryResolver]:
        return {}

    def resolve_handler_name(self, type_name: str, kind: str) -> Optional[str]:
        """Map an unknown handler type onto a registered one, or None."""
        return None

    def on_register(self, registry: "PackageRegistry") -> None:
        self.registry = registry

    # Rules

    def register_rule(self, rule: Rule) -> None:
        self._rules.append(rule)

    def unregister_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [rule for rule in self._rules if rule.id != rule_id]
        return len(self._rules) != before

    def get_rules(self) -> List[Rule]:
        return list(self._rules)

    def clear_rules(self) -> None:
        self._rules = []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
