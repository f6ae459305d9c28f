"""
Deferred binding of rules to host events.

Each event name moves through ``UNREGISTERED -> PENDING -> REGISTERED``.
Rules can be registered before the host dispatcher exists; their event
names wait in the pending set and are bound the next time a registration
finds the host ready, or when ``flush_pending()`` is called. An event name
is bound at most once per gateway, even across ``clear()``.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from shared.config import get_settings
from shared.errors import BindingError
from shared.logging import event_name_var, get_logger

from ..context import HOOK_KEY
from ..rules.engine import sort_rules
from ..rules.models import ExecutionResult, Rule, RuleMetadata
from .base import BasePackage

EventCallback = Callable[..., None]


class EventHost(Protocol):
    """What the gateway needs from a host dispatcher."""

    def bind(self, event_name: str, priority: int, callback: EventCallback) -> Any:
        ...


class HookState(str, Enum):
    UNREGISTERED = "unregistered"
    PENDING = "pending"
    REGISTERED = "registered"


class HookGateway(BasePackage):
    """Package that runs its rules when the host fires their event."""

    def __init__(self, host: Optional[EventHost] = None, name: str = "hooks"):
        self._name = name
        super().__init__()
        self.host = host
        self._rules_by_event: Dict[str, List[Rule]] = {}
        self._pending: Dict[str, int] = {}
        self._registered: Dict[str, int] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespaces(self) -> List[str]:
        return [HOOK_KEY]

    def required_packages(self) -> List[str]:
        return ["core"]

    def is_available(self) -> bool:
        if self.host is None:
            return False
        check = getattr(self.host, "is_available", None)
        return bool(check()) if callable(check) else True

    def set_host(self, host: Optional[EventHost]) -> None:
        """Attach the host dispatcher and bind anything still pending."""
        self.host = host
        if host is not None:
            self.flush_pending()

    def state(self, event_name: str) -> HookState:
        if event_name in self._registered:
            return HookState.REGISTERED
        if event_name in self._pending:
            return HookState.PENDING
        return HookState.UNREGISTERED

    @property
    def pending_events(self) -> Dict[str, int]:
        return dict(self._pending)

    @property
    def registered_events(self) -> List[str]:
        return list(self._registered)

    # Rules

    def register_rule(self, rule: Rule, metadata: Optional[RuleMetadata] = None) -> None:
        """Store ``rule`` under its event and bind the event if the host is ready."""
        settings = get_settings()
        metadata = metadata or rule.metadata
        event_name = metadata.event_name or settings.default_event
        priority = metadata.event_priority if metadata.event_priority is not None else settings.default_event_priority

        if rule.metadata.event_name != event_name or rule.metadata.event_priority != priority:
            rule = rule.with_metadata(event_name=event_name, event_priority=priority)

        self._rules_by_event.setdefault(event_name, []).append(rule)

        if event_name in self._registered:
            return

        if event_name not in self._pending:
            self._pending[event_name] = priority

        if not self.is_available():
            self.logger.debug("Host not ready, event binding deferred", event_name=event_name, priority=priority)
            return

        self.flush_pending()

    def unregister_rule(self, rule_id: str) -> bool:
        removed = False
        for event_name, rules in self._rules_by_event.items():
            kept = [rule for rule in rules if rule.id != rule_id]
            removed = removed or len(kept) != len(rules)
            self._rules_by_event[event_name] = kept
        return removed

    def rules_for_event(self, event_name: str) -> List[Rule]:
        return sort_rules(self._rules_by_event.get(event_name, []))

    def get_rules(self) -> List[Rule]:
        rules: List[Rule] = []
        for event_rules in self._rules_by_event.values():
            rules.extend(event_rules)
        return rules

    def clear_rules(self) -> None:
        """Drop stored rules and pending events; registered events stay bound."""
        self._rules_by_event = {}
        self._pending = {}

    # Binding

    def flush_pending(self) -> List[str]:
        """Bind every pending event name. Returns the names bound by this call."""
        if not self._pending or not self.is_available():
            return []

        bound = []
        for event_name, priority in list(self._pending.items()):
            if event_name in self._registered:
                del self._pending[event_name]
                continue
            try:
                self._bind(event_name, priority)
            except BindingError as e:
                # Stays pending for the next attempt
                self.logger.error("Event binding failed", event_name=event_name, error=e.message, **e.details)
                continue
            del self._pending[event_name]
            bound.append(event_name)
        return bound

    def _bind(self, event_name: str, priority: int) -> None:
        metrics = self.registry.metrics if self.registry is not None else None
        try:
            self.host.bind(event_name, priority, self._make_callback(event_name))
        except Exception as e:
            if metrics is not None:
                metrics.record_binding("failed")
            raise BindingError(event_name, str(e), {"priority": priority}) from e

        self._registered[event_name] = priority
        if metrics is not None:
            metrics.record_binding("bound")
        self.logger.debug("Event bound", event_name=event_name, priority=priority)

    def _make_callback(self, event_name: str) -> EventCallback:
        def callback(*args: Any) -> None:
            self.fire(event_name, *args)
        callback.event_name = event_name
        return callback

    # Dispatch

    def fire(self, event_name: str, *args: Any) -> ExecutionResult:
        """Run the rules bound to ``event_name``. Never raises into the host."""
        token = event_name_var.set(event_name)
        try:
            rules = self.rules_for_event(event_name)
            if not rules:
                return ExecutionResult()

            if self.registry is None:
                self.logger.warning("Event fired before the gateway was registered", event_name=event_name)
                return ExecutionResult()

            context = self.registry.build_context()
            context.set(HOOK_KEY, {"name": event_name, "args": list(args)})

            return self.registry.engine().execute(rules, context)

        except Exception as e:
            self.logger.error("Error handling event", event_name=event_name, error=str(e))
            return ExecutionResult(error=str(e))

        finally:
            event_name_var.reset(token)


class InMemoryEventHost:
    """Minimal host dispatcher: callbacks per event, run by priority."""

    def __init__(self):
        self._bindings: Dict[str, List[Tuple[int, int, EventCallback]]] = {}
        self._sequence = 0

    def bind(self, event_name: str, priority: int, callback: EventCallback) -> None:
        self._sequence += 1
        self._bindings.setdefault(event_name, []).append((priority, self._sequence, callback))

    def fire(self, event_name: str, *args: Any) -> int:
        """Invoke every callback bound to ``event_name``; returns how many ran."""
        callbacks = sorted(self._bindings.get(event_name, []), key=lambda item: (item[0], item[1]))
        for _, _, callback in callbacks:
            callback(*args)
        return len(callbacks)

    def bindings(self, event_name: Optional[str] = None) -> Dict[str, int]:
        """Number of bindings per event name."""
        if event_name is not None:
            return {event_name: len(self._bindings.get(event_name, []))}
        return {name: len(callbacks) for name, callbacks in self._bindings.items()}
