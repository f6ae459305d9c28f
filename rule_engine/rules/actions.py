"""
Action handlers and the dispatcher that runs them.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Optional, TYPE_CHECKING

from shared.errors import ConfigurationError
from shared.logging import ErrorAggregator, get_logger
from shared.metrics import MetricsCollector

from ..context import Context
from .arguments import ArgumentValue
from .guard import ACTION, FailureBoundary
from .models import Action
from .placeholders import PlaceholderResolver

if TYPE_CHECKING:
    from .handlers import HandlerRegistry

logger = get_logger("rule_engine.actions")

ActionCallback = Callable[[Dict[str, Any], Context], Any]


class BaseAction(ABC):
    """Base class for actions."""

    argument_mapping = ("value",)

    def __init__(self, config: Action, context: Context, resolver: Optional[PlaceholderResolver] = None):
        self.config = config
        self.type = config.type
        self.args = dict(config.args)
        self.resolver = resolver or PlaceholderResolver(context)

    def get_type(self) -> str:
        return self.type

    def get_arg(self, key: str, default: Any = None) -> ArgumentValue:
        return ArgumentValue(self.args.get(key), default, self.resolver)

    def resolve_value(self, value: str) -> str:
        return self.resolver.resolve(value)

    @abstractmethod
    def execute(self, context: Context) -> None:
        """Perform the action."""


class CallbackAction:
    """Action registered as a plain function ``fn(config, context)``."""

    def __init__(self, type_name: str, callback: ActionCallback, config: Action, context: Context):
        self.type_name = type_name
        self.callback = callback
        self.config = config
        self.context = context

    def get_type(self) -> str:
        return self.type_name

    def execute(self, context: Context) -> None:
        self.callback(self.config.to_config(), context)


class LogAction(BaseAction):
    """Writes ``message`` (placeholders resolved) to the engine log."""

    LEVELS = ("debug", "info", "warning", "error", "critical")

    argument_mapping = ("message", "level")

    def execute(self, context: Context) -> None:
        message = self.get_arg("message", self.args.get("msg", "")).string()
        level = self.get_arg("level", "info").string().lower()
        if level not in self.LEVELS:
            level = "info"
        getattr(logger, level)(message, action=self.type)


class ActionDispatcher:
    """Executes a rule's actions in order, each inside its own failure boundary.

    Actions carrying the ``locked`` flag claim their type for the rest of
    the pass: later actions of that type, from any rule, are skipped.
    """

    def __init__(
        self,
        handlers: "HandlerRegistry",
        aggregator: Optional[ErrorAggregator] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.handlers = handlers
        self.metrics = metrics
        self.boundary = FailureBoundary(ACTION, aggregator, metrics)
        self.locked_actions: Dict[str, str] = {}

    def reset(self) -> None:
        self.locked_actions.clear()

    def run(
        self,
        actions: Iterable[Action],
        context: Context,
        rule_id: str = "unknown",
        resolver: Optional[PlaceholderResolver] = None,
    ) -> int:
        """Run actions and return how many completed. Never raises."""
        executed = 0
        for action in actions:
            try:
                if self._run_one(action, context, rule_id, resolver):
                    executed += 1
            except Exception as e:
                # Anything escaping the per-action boundary still stays here
                self.boundary.record(getattr(action, "type", "unknown"), e)
        return executed

    def _run_one(self, action: Action, context: Context, rule_id: str, resolver: Optional[PlaceholderResolver]) -> bool:
        action_type = action.type

        owner = self.locked_actions.get(action_type)
        if owner is not None:
            logger.warning(
                "Action locked by another rule, skipping",
                action_type=action_type,
                locked_by=owner,
                rule_id=rule_id
            )
            return False

        try:
            handler = self.handlers.create_action(action, context, resolver)
        except ConfigurationError as e:
            logger.error("Cannot create action", action_type=action_type, error=e.message)
            return False

        ok = self.boundary.call(action_type, self._execute, handler, context, default=False)
        if not ok:
            return False

        if self.metrics is not None:
            self.metrics.record_action()
        if action.locked:
            self.locked_actions[action_type] = rule_id
        return True

    @staticmethod
    def _execute(handler, context: Context) -> bool:
        handler.execute(context)
        return True
