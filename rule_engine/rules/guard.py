"""
Per-unit failure isolation for condition and action handlers.
"""

from typing import Any, Callable, Optional, TypeVar

from shared.errors import HandlerExecutionError
from shared.logging import ErrorAggregator, get_logger
from shared.metrics import MetricsCollector

logger = get_logger("rule_engine.guard")

T = TypeVar("T")

CONDITION = "condition"
ACTION = "action"
PLACEHOLDER = "placeholder"

_CATEGORIES = {
    CONDITION: "condition_check",
    ACTION: "action_execution",
    PLACEHOLDER: "placeholder_resolution",
}


class FailureBoundary:
    """Runs one handler call and turns any failure into a safe default.

    Every failure is logged with the handler type and message, added to
    the pass aggregator and counted in metrics. Nothing is re-raised.
    """

    def __init__(
        self,
        kind: str,
        aggregator: Optional[ErrorAggregator] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.kind = kind
        self.aggregator = aggregator
        self.metrics = metrics

    def call(self, handler_type: str, func: Callable[..., T], *args: Any, default: T, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            self.record(handler_type, e)
            return default

    def record(self, handler_type: str, error: Exception) -> HandlerExecutionError:
        message = str(error) or error.__class__.__name__
        failure = HandlerExecutionError(
            handler_type, message, {"kind": self.kind, "exception": error.__class__.__name__}
        )
        logger.error(
            f"Error executing {self.kind}",
            kind=self.kind,
            handler_type=handler_type,
            error=message,
            code=failure.code,
        )
        if self.aggregator is not None:
            self.aggregator.add(_CATEGORIES.get(self.kind, self.kind), failure.message)
        if self.metrics is not None:
            self.metrics.record_failure(self.kind, handler_type)
        return failure


def guarded(
    kind: str,
    handler_type: str,
    func: Callable[..., T],
    *args: Any,
    default: T,
    aggregator: Optional[ErrorAggregator] = None,
    metrics: Optional[MetricsCollector] = None,
    **kwargs: Any,
) -> T:
    """One-shot form of :class:`FailureBoundary`."""
    boundary = FailureBoundary(kind, aggregator, metrics)
    return boundary.call(handler_type, func, *args, default=default, **kwargs)
