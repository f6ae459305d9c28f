"""
Registry mapping condition/action type names to handler factories.

Lookups are plain dictionary reads. A type that is not registered is
offered to the resolution hooks contributed by packages, which may alias
it to another registered type.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.errors import ConfigurationError
from shared.logging import get_logger

from ..context import Context
from .actions import ActionCallback, CallbackAction
from .conditions import CallbackCondition, ConditionCallback
from .models import Action, Condition
from .placeholders import CategoryResolver, PlaceholderResolver

logger = get_logger("rule_engine.handlers")

CONDITIONS = "conditions"
ACTIONS = "actions"

HandlerFactory = Callable[[Any, Context, Optional[PlaceholderResolver]], Any]
NameResolver = Callable[[str, str], Optional[str]]


class HandlerRegistry:
    """Explicit registry of condition/action factories and placeholder categories."""

    def __init__(self):
        self._factories: Dict[str, Dict[str, HandlerFactory]] = {CONDITIONS: {}, ACTIONS: {}}
        self._owners: Dict[Tuple[str, str], Optional[str]] = {}
        self._callbacks: Dict[str, set] = {CONDITIONS: set(), ACTIONS: set()}
        self._placeholders: Dict[str, CategoryResolver] = {}
        self._name_resolvers: List[NameResolver] = []

    # Registration

    def register_condition(self, type_name: str, factory: HandlerFactory, owner: Optional[str] = None) -> None:
        self._register(CONDITIONS, type_name, factory, owner)

    def register_action(self, type_name: str, factory: HandlerFactory, owner: Optional[str] = None) -> None:
        self._register(ACTIONS, type_name, factory, owner)

    def register_condition_callback(self, type_name: str, callback: ConditionCallback) -> None:
        """Register ``callback(config, context) -> bool`` as a condition type."""
        if not callable(callback):
            raise ConfigurationError(f"Callback for condition type '{type_name}' is not callable")

        def factory(config: Condition, context: Context, resolver: Optional[PlaceholderResolver] = None):
            return CallbackCondition(type_name, callback, config, context)

        self._register(CONDITIONS, type_name, factory, None)
        self._callbacks[CONDITIONS].add(type_name)

    def register_action_callback(self, type_name: str, callback: ActionCallback) -> None:
        """Register ``callback(config, context)`` as an action type."""
        if not callable(callback):
            raise ConfigurationError(f"Callback for action type '{type_name}' is not callable")

        def factory(config: Action, context: Context, resolver: Optional[PlaceholderResolver] = None):
            return CallbackAction(type_name, callback, config, context)

        self._register(ACTIONS, type_name, factory, None)
        self._callbacks[ACTIONS].add(type_name)

    def register_placeholder(self, category: str, resolver: CategoryResolver) -> None:
        self._placeholders[category] = resolver

    def add_name_resolver(self, resolver: NameResolver) -> None:
        if resolver not in self._name_resolvers:
            self._name_resolvers.append(resolver)

    def _register(self, kind: str, type_name: str, factory: HandlerFactory, owner: Optional[str]) -> None:
        if not type_name:
            raise ConfigurationError(f"Cannot register {kind[:-1]} without a type")
        if type_name in self._factories[kind]:
            logger.debug("Handler overwritten", kind=kind, handler_type=type_name)
        self._factories[kind][type_name] = factory
        self._owners[(kind, type_name)] = owner
        self._callbacks[kind].discard(type_name)

    # Lookup

    def has_condition(self, type_name: str) -> bool:
        return self._resolve(CONDITIONS, type_name) is not None

    def has_action(self, type_name: str) -> bool:
        return self._resolve(ACTIONS, type_name) is not None

    def is_callback(self, kind: str, type_name: str) -> bool:
        return type_name in self._callbacks[kind]

    def owner(self, kind: str, type_name: str) -> Optional[str]:
        """Package that contributed ``type_name`` (None for core/callbacks)."""
        resolved = self._resolve(kind, type_name)
        if resolved is None:
            return None
        return self._owners.get((kind, resolved))

    def factory(self, kind: str, type_name: str) -> HandlerFactory:
        resolved = self._resolve(kind, type_name)
        if resolved is None:
            raise ConfigurationError(
                f"Unknown {kind[:-1]} type: {type_name}",
                {"kind": kind, "type": type_name}
            )
        return self._factories[kind][resolved]

    def argument_mapping(self, kind: str, type_name: str) -> Tuple[str, ...]:
        try:
            factory = self.factory(kind, type_name)
        except ConfigurationError:
            return ("value",)
        return tuple(getattr(factory, "argument_mapping", ("value",)))

    def _resolve(self, kind: str, type_name: str) -> Optional[str]:
        if type_name in self._factories[kind]:
            return type_name
        for resolver in self._name_resolvers:
            alias = resolver(type_name, kind)
            if alias is not None and alias in self._factories[kind]:
                return alias
        return None

    # Construction

    def placeholder_resolvers(self) -> Dict[str, CategoryResolver]:
        return dict(self._placeholders)

    def make_resolver(self, context: Context) -> PlaceholderResolver:
        return PlaceholderResolver(context, self._placeholders)

    def create_condition(self, condition: Condition, context: Context, resolver: Optional[PlaceholderResolver] = None):
        factory = self.factory(CONDITIONS, condition.type)
        return factory(condition, context, resolver or self.make_resolver(context))

    def create_action(self, action: Action, context: Context, resolver: Optional[PlaceholderResolver] = None):
        factory = self.factory(ACTIONS, action.type)
        return factory(action, context, resolver or self.make_resolver(context))

    def clear(self) -> None:
        for kind in self._factories:
            self._factories[kind].clear()
            self._callbacks[kind].clear()
        self._owners.clear()
        self._placeholders.clear()
        self._name_resolvers.clear()
