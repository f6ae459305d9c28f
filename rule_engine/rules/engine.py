"""
Rule evaluation engine.
"""

import time
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from shared.errors import ConfigurationError
from shared.logging import (
    ErrorAggregator, get_logger, rule_id_var, set_evaluation_id
)
from shared.metrics import MetricsCollector

from ..context import Context
from .actions import ActionDispatcher
from .guard import CONDITION, FailureBoundary
from .handlers import HandlerRegistry
from .models import Condition, ExecutionResult, MatchType, Rule
from .placeholders import PlaceholderResolver

RuleLike = Union[Rule, Mapping[str, Any]]


def sort_rules(rules: Iterable[Rule]) -> List[Rule]:
    """Order ascending; ties keep registration order."""
    return sorted(rules, key=lambda rule: rule.order)


class RuleEngine:
    """Evaluates rules against a context and runs the actions of matching ones."""

    def __init__(
        self,
        handlers: HandlerRegistry,
        metrics: Optional[MetricsCollector] = None,
        available_packages: Optional[Iterable[str]] = None,
    ):
        self.logger = get_logger("rule_engine.engine")
        self.handlers = handlers
        self.metrics = metrics
        self.available_packages = set(available_packages) if available_packages is not None else None

    def execute(
        self,
        rules: Iterable[RuleLike],
        context: Union[Context, Mapping[str, Any], None] = None,
        allowed_packages: Optional[Iterable[str]] = None,
    ) -> ExecutionResult:
        """Run one pass over ``rules``. Never raises."""
        if not isinstance(context, Context):
            context = Context(context or {})

        start_time = time.time()
        set_evaluation_id()
        aggregator = ErrorAggregator()
        dispatcher = ActionDispatcher(self.handlers, aggregator, self.metrics)
        boundary = FailureBoundary(CONDITION, aggregator, self.metrics)
        available = set(allowed_packages) if allowed_packages is not None else self.available_packages
        result = ExecutionResult()

        try:
            resolver = self.handlers.make_resolver(context)
            enabled = [rule for rule in self._coerce(rules) if rule.enabled]

            for rule in sort_rules(enabled):
                rule_id_var.set(rule.id)
                self._execute_rule(rule, context, resolver, dispatcher, boundary, available, result)

        except Exception as e:
            self.logger.error("Rule execution error", error=str(e))
            result.error = str(e)

        finally:
            rule_id_var.set(None)
            aggregator.flush(self.logger)

        result.context = context.to_dict()

        self.logger.debug(
            "Rule pass complete",
            rules_processed=result.rules_processed,
            rules_matched=result.rules_matched,
            rules_skipped=result.rules_skipped,
            actions_executed=result.actions_executed,
            duration_ms=round((time.time() - start_time) * 1000, 3)
        )
        if self.metrics is not None:
            self.metrics.get_metric("rule_execution_duration_seconds").labels(
                component=self.metrics.component
            ).observe(time.time() - start_time)

        return result

    def _execute_rule(
        self,
        rule: Rule,
        context: Context,
        resolver: PlaceholderResolver,
        dispatcher: ActionDispatcher,
        boundary: FailureBoundary,
        available: Optional[set],
        result: ExecutionResult,
    ) -> None:
        result.rules_processed += 1

        if not self._packages_available(rule, available):
            result.rules_skipped += 1
            if self.metrics is not None:
                self.metrics.record_skip("missing_package")
            return

        matched = self.evaluate_conditions(rule.conditions, rule.match_type, context, resolver, boundary)
        if self.metrics is not None:
            self.metrics.record_rule(matched)
        if not matched:
            return

        result.rules_matched += 1
        result.matched_rule_ids.append(rule.id)
        self.logger.debug("Rule matched", rule_id=rule.id, title=rule.title)

        result.actions_executed += dispatcher.run(rule.actions, context, rule.id, resolver)

    def evaluate_conditions(
        self,
        conditions: Sequence[Condition],
        match_type: MatchType,
        context: Context,
        resolver: Optional[PlaceholderResolver] = None,
        boundary: Optional[FailureBoundary] = None,
    ) -> bool:
        """Combine condition results with the rule's match type.

        Zero conditions match under ``all`` and ``none`` and never under ``any``.
        """
        match_type = MatchType(match_type)
        if not conditions:
            return match_type is not MatchType.ANY

        resolver = resolver or self.handlers.make_resolver(context)
        boundary = boundary or FailureBoundary(CONDITION, metrics=self.metrics)
        results = (self._check_condition(c, context, resolver, boundary) for c in conditions)
        return match_type.combine(results)

    def _check_condition(
        self,
        condition: Condition,
        context: Context,
        resolver: PlaceholderResolver,
        boundary: FailureBoundary,
    ) -> bool:
        try:
            handler = self.handlers.create_condition(condition, context, resolver)
        except ConfigurationError as e:
            self.logger.error("Cannot create condition", condition_type=condition.type, error=e.message)
            return False
        except Exception as e:
            boundary.record(condition.type, e)
            return False

        return bool(boundary.call(condition.type, handler.matches, context, default=False))

    def _packages_available(self, rule: Rule, available: Optional[set]) -> bool:
        required = rule.metadata.required_packages
        if not required or available is None:
            return True

        missing = [name for name in required if name not in available]
        if missing:
            self.logger.warning(
                "Rule requires unavailable packages",
                rule_id=rule.id,
                required=list(required),
                available=sorted(available),
                missing=missing
            )
            return False
        return True

    def _coerce(self, rules: Iterable[RuleLike]) -> List[Rule]:
        coerced = []
        for rule in rules:
            if isinstance(rule, Rule):
                coerced.append(rule)
                continue
            try:
                coerced.append(Rule.from_config(rule))
            except ConfigurationError as e:
                self.logger.error("Invalid rule configuration", error=e.message, details=e.details)
        return coerced
