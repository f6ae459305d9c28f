"""
Fluent construction of rules.

    RuleBuilder.create("block-posts") \\
        .when_all().request_method("POST").cookie("session_id") \\
        .then().log("posted").lock() \\
        .register(registry)

Unknown attribute names on the condition/action builders become condition
or action types (``requestMethod`` and ``request_method`` both give
``request_method``).
"""

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING, Union

from shared.config import get_settings
from shared.errors import ConfigurationError
from shared.logging import get_logger

from .handlers import ACTIONS, CONDITIONS, HandlerRegistry
from .models import MatchType, Rule

if TYPE_CHECKING:
    from ..packages.registry import PackageRegistry

logger = get_logger("rule_engine.builder")

CORE_PACKAGE = "core"
HOOKS_PACKAGE = "hooks"

# Used when no handler registry is available to ask
NAME_BASED_TYPES = ("request_header", "request_param", "cookie", "context")

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_DELIMITED_REGEX = re.compile(r"^/.*/$", re.DOTALL)


def method_to_type(method: str) -> str:
    """``isUserLoggedIn`` -> ``is_user_logged_in``."""
    return _CAMEL.sub("_", method).lower()


def infer_operator(value: Any, operator: str = "=") -> str:
    """Pick an operator from the shape of the expected value."""
    if operator not in ("=", "LIKE"):
        return operator
    if isinstance(value, (list, tuple)):
        return "IN"
    if isinstance(value, bool):
        return "IS"
    if value is None:
        return "EXISTS"
    if isinstance(value, str) and _DELIMITED_REGEX.match(value):
        return "REGEXP"
    if isinstance(value, str) and ("*" in value or "?" in value):
        return "LIKE"
    return operator


class ConditionBuilder:
    """Collects conditions for a :class:`RuleBuilder`."""

    def __init__(self, rule_builder: "RuleBuilder", match_type: MatchType = MatchType.ALL):
        self._rule_builder = rule_builder
        self._match_type = MatchType(match_type)
        self._conditions: List[Dict[str, Any]] = []

    def match_all(self) -> "ConditionBuilder":
        self._match_type = MatchType.ALL
        return self

    def match_any(self) -> "ConditionBuilder":
        self._match_type = MatchType.ANY
        return self

    def match_none(self) -> "ConditionBuilder":
        self._match_type = MatchType.NONE
        return self

    def custom(self, type_name: str, arg: Union[Dict[str, Any], Callable, None] = None) -> "ConditionBuilder":
        """Add a raw condition config, or register ``arg`` as a callback type."""
        if callable(arg):
            self._rule_builder.handlers_or_raise().register_condition_callback(type_name, arg)
            self._conditions.append({"type": type_name})
            return self
        config = dict(arg or {})
        config["type"] = type_name
        self._conditions.append(config)
        return self

    def add(self, type_name: str, *args: Any, **kwargs: Any) -> "ConditionBuilder":
        config = self._build_config(type_name, args)
        config.update(kwargs)
        self._conditions.append(config)
        return self

    def end(self) -> "RuleBuilder":
        return self._rule_builder.set_conditions(self._conditions, self._match_type)

    @property
    def conditions(self) -> List[Dict[str, Any]]:
        return list(self._conditions)

    @property
    def match_type(self) -> MatchType:
        return self._match_type

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)

        # Rule-level methods close this builder and continue on the rule
        if hasattr(RuleBuilder, name):
            return getattr(self.end(), name)

        type_name = method_to_type(name)

        def add_condition(*args: Any, **kwargs: Any) -> "ConditionBuilder":
            return self.add(type_name, *args, **kwargs)

        return add_condition

    def _build_config(self, type_name: str, args: Sequence[Any]) -> Dict[str, Any]:
        config: Dict[str, Any] = {"type": type_name}
        if not args:
            return config

        if "name" in self._rule_builder.argument_mapping(CONDITIONS, type_name):
            config["name"] = args[0]
            args = args[1:]
            if not args:
                config["operator"] = "EXISTS"
                return config

        config["value"] = args[0]
        config["operator"] = args[1] if len(args) > 1 else infer_operator(args[0])
        if config["operator"] in ("EXISTS", "NOT EXISTS") and config["value"] is None:
            config.pop("value")
        return config


class ActionBuilder:
    """Collects actions for a :class:`RuleBuilder`."""

    def __init__(self, rule_builder: "RuleBuilder"):
        self._rule_builder = rule_builder
        self._actions: List[Dict[str, Any]] = []

    def custom(self, type_name: str, arg: Union[Dict[str, Any], Callable, None] = None) -> "ActionBuilder":
        if callable(arg):
            self._rule_builder.handlers_or_raise().register_action_callback(type_name, arg)
            self._actions.append({"type": type_name})
            return self
        config = dict(arg or {})
        config["type"] = type_name
        self._actions.append(config)
        return self

    def add(self, type_name: str, *args: Any, **kwargs: Any) -> "ActionBuilder":
        config: Dict[str, Any] = {"type": type_name}
        mapping = self._rule_builder.argument_mapping(ACTIONS, type_name)
        for key, value in zip(mapping, args):
            config[key] = value
        config.update(kwargs)
        self._actions.append(config)
        return self

    def lock(self) -> "ActionBuilder":
        """Lock the last added action type for the rest of the pass."""
        if not self._actions:
            raise ConfigurationError("lock() needs a preceding action")
        self._actions[-1]["locked"] = True
        return self

    def end(self) -> "RuleBuilder":
        return self._rule_builder.set_actions(self._actions)

    @property
    def actions(self) -> List[Dict[str, Any]]:
        return list(self._actions)

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)

        if hasattr(RuleBuilder, name):
            return getattr(self.end(), name)

        type_name = method_to_type(name)

        def add_action(*args: Any, **kwargs: Any) -> "ActionBuilder":
            return self.add(type_name, *args, **kwargs)

        return add_action


class RuleBuilder:
    """Builds one rule and registers it with a package registry."""

    def __init__(self, rule_id: str, rule_type: Optional[str] = None, handlers: Optional[HandlerRegistry] = None):
        settings = get_settings()
        self.rule_type = rule_type
        self.handlers = handlers
        self.event_name: Optional[str] = None
        self.event_priority = settings.default_event_priority
        self._config: Dict[str, Any] = {
            "id": rule_id,
            "title": "",
            "order": settings.default_rule_order,
            "enabled": True,
            "match_type": MatchType.ALL.value,
            "conditions": [],
            "actions": [],
        }

    @classmethod
    def create(cls, rule_id: str, rule_type: Optional[str] = None, handlers: Optional[HandlerRegistry] = None) -> "RuleBuilder":
        return cls(rule_id, rule_type, handlers)

    def on(self, event_name: str, priority: Optional[int] = None) -> "RuleBuilder":
        """Bind the rule to a host event."""
        self.event_name = event_name
        if priority is not None:
            self.event_priority = priority
        return self

    def title(self, title: str) -> "RuleBuilder":
        self._config["title"] = title
        return self

    def order(self, order: int) -> "RuleBuilder":
        self._config["order"] = order
        return self

    def enabled(self, enabled: bool = True) -> "RuleBuilder":
        self._config["enabled"] = enabled
        return self

    def when(self, conditions: Optional[List[Dict[str, Any]]] = None):
        return self.when_all(conditions)

    def when_all(self, conditions: Optional[List[Dict[str, Any]]] = None):
        return self._when(MatchType.ALL, conditions)

    def when_any(self, conditions: Optional[List[Dict[str, Any]]] = None):
        return self._when(MatchType.ANY, conditions)

    def when_none(self, conditions: Optional[List[Dict[str, Any]]] = None):
        return self._when(MatchType.NONE, conditions)

    def then(self, actions: Optional[List[Dict[str, Any]]] = None):
        if actions is None:
            return ActionBuilder(self)
        return self.set_actions(actions)

    def set_conditions(self, conditions: List[Dict[str, Any]], match_type: MatchType = MatchType.ALL) -> "RuleBuilder":
        self._config["match_type"] = MatchType(match_type).value
        self._config["conditions"] = list(conditions)
        return self

    def set_actions(self, actions: List[Dict[str, Any]]) -> "RuleBuilder":
        self._config["actions"] = list(actions)
        return self

    def to_config(self) -> Dict[str, Any]:
        return dict(self._config)

    def build(self) -> Rule:
        """Validate and return the rule with detected metadata."""
        rule = Rule.from_config(self._config)
        required = self.detect_required_packages()
        rule_type = self.detect_type(required)

        if rule_type == HOOKS_PACKAGE and HOOKS_PACKAGE not in required:
            required.append(HOOKS_PACKAGE)

        metadata: Dict[str, Any] = {"required_packages": tuple(required), "type": rule_type}
        if rule_type == HOOKS_PACKAGE:
            metadata["event_name"] = self.event_name or get_settings().default_event
            metadata["event_priority"] = self.event_priority
        return rule.with_metadata(**metadata)

    def register(self, registry: "PackageRegistry") -> bool:
        """Build the rule and hand it to the registry. Returns False on bad config."""
        if self.handlers is None:
            self.handlers = registry.handlers
        try:
            rule = self.build()
        except ConfigurationError as e:
            logger.error("Failed to validate rule", rule_id=self._config.get("id"), error=e.message)
            return False
        return registry.register_rule(rule)

    # Auto-detection helpers

    def detect_required_packages(self) -> List[str]:
        packages = set()
        for kind, key in ((CONDITIONS, "conditions"), (ACTIONS, "actions")):
            for config in self._config[key]:
                type_name = config.get("type") if isinstance(config, dict) else None
                if not type_name or self.handlers is None:
                    continue
                owner = self.handlers.owner(kind, type_name)
                if owner:
                    packages.add(owner)

        packages.discard(CORE_PACKAGE)
        if not packages:
            packages.add(self.rule_type or CORE_PACKAGE)
        return sorted(packages)

    def detect_type(self, required_packages: Sequence[str]) -> Optional[str]:
        if self.rule_type is not None:
            return self.rule_type
        if self.event_name is not None or HOOKS_PACKAGE in required_packages:
            return HOOKS_PACKAGE
        return None

    def argument_mapping(self, kind: str, type_name: str):
        if self.handlers is not None and (
            self.handlers.has_condition(type_name) if kind == CONDITIONS else self.handlers.has_action(type_name)
        ):
            return self.handlers.argument_mapping(kind, type_name)
        if kind == CONDITIONS and type_name in NAME_BASED_TYPES:
            return ("name", "value")
        if kind == ACTIONS and type_name == "log":
            return ("message", "level")
        return ("value",)

    def handlers_or_raise(self) -> HandlerRegistry:
        if self.handlers is None:
            raise ConfigurationError("Callback handlers need a handler registry")
        return self.handlers

    def _when(self, match_type: MatchType, conditions: Optional[List[Dict[str, Any]]]):
        if conditions is None:
            return ConditionBuilder(self, match_type)
        return self.set_conditions(conditions, match_type)
