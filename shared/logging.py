"""
Shared logging configuration for the rule engine.
"""

import sys
import structlog
import logging
import uuid
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple
from contextvars import ContextVar

# Context variables for evaluation correlation
evaluation_id_var: ContextVar[Optional[str]] = ContextVar('evaluation_id', default=None)
rule_id_var: ContextVar[Optional[str]] = ContextVar('rule_id', default=None)
event_name_var: ContextVar[Optional[str]] = ContextVar('event_name', default=None)


def configure_logging(
    log_level: str = "info",
    json: bool = True,
    rate_limit_seconds: int = 60,
    cache_loggers: bool = True,
) -> None:
    """Configure structured logging for the engine."""

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            SuppressRepeats(rate_limit_seconds),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_component_context,
            add_correlation_context,
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=cache_loggers,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_component_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the engine component to log events."""
    # Logger names look like "rule_engine.<component>"
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["component"] = logger_name.split(".", 1)[1]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add evaluation correlation context to log events."""
    evaluation_id = evaluation_id_var.get()
    if evaluation_id:
        event_dict.setdefault("evaluation_id", evaluation_id)

    rule_id = rule_id_var.get()
    if rule_id:
        event_dict.setdefault("rule_id", rule_id)

    event_name = event_name_var.get()
    if event_name:
        event_dict.setdefault("event_name", event_name)

    return event_dict


class SuppressRepeats:
    """Processor that collapses identical log events inside a time window.

    The first occurrence of a (logger, level, event) triple is always
    emitted. Repeats inside ``window_seconds`` are dropped and counted; the
    first emission after the window has elapsed carries ``repeated`` with
    the number of events that were swallowed.

    At most ``max_keys`` triples are tracked. Expired triples with nothing
    swallowed are pruned first, then the least recently seen ones. Events
    from ``exempt_loggers`` (rule ``log`` action output) always pass.
    """

    def __init__(
        self,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 1024,
        exempt_loggers: Tuple[str, ...] = ("rule_engine.actions",),
    ):
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max(1, max_keys)
        self.exempt_loggers = frozenset(exempt_loggers)
        self._seen: "OrderedDict[Tuple[str, str, str], List[float]]" = OrderedDict()

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        if self.window_seconds <= 0:
            return event_dict

        logger_name = str(event_dict.get("logger", ""))
        if logger_name in self.exempt_loggers:
            return event_dict

        key = (
            logger_name,
            str(event_dict.get("level", method_name)),
            str(event_dict.get("event", "")),
        )
        now = self.clock()
        entry = self._seen.get(key)

        if entry is None:
            self._remember(key, now)
            return event_dict

        self._seen.move_to_end(key)
        last_logged, suppressed = entry
        if now - last_logged < self.window_seconds:
            entry[1] = suppressed + 1
            raise structlog.DropEvent

        if suppressed:
            event_dict["repeated"] = int(suppressed)
        self._seen[key] = [now, 0]
        return event_dict

    def __len__(self) -> int:
        return len(self._seen)

    def _remember(self, key: Tuple[str, str, str], now: float) -> None:
        if len(self._seen) >= self.max_keys:
            self._prune(now)
        while len(self._seen) >= self.max_keys:
            self._seen.popitem(last=False)
        self._seen[key] = [now, 0]

    def _prune(self, now: float) -> None:
        expired = [
            key for key, (last_logged, suppressed) in self._seen.items()
            if not suppressed and now - last_logged >= self.window_seconds
        ]
        for key in expired:
            del self._seen[key]

    def reset(self) -> None:
        self._seen.clear()


class ErrorAggregator:
    """Collects handler failures during one pass and reports them together."""

    SAMPLE_SIZE = 3

    def __init__(self):
        self._errors: Dict[str, List[str]] = {}

    def add(self, category: str, message: str) -> None:
        self._errors.setdefault(category, []).append(message)

    def count(self, category: Optional[str] = None) -> int:
        if category is not None:
            return len(self._errors.get(category, []))
        return sum(len(messages) for messages in self._errors.values())

    def summaries(self) -> Dict[str, str]:
        """Build one summary line per category."""
        summaries = {}
        for category, messages in self._errors.items():
            summary = f'{len(messages)} error(s) in category "{category}"'
            sample = messages[:self.SAMPLE_SIZE]
            if sample:
                summary += ": " + "; ".join(sample)
            if len(messages) > len(sample):
                summary += f" ... and {len(messages) - len(sample)} more"
            summaries[category] = summary
        return summaries

    def flush(self, logger: Any) -> None:
        """Emit one warning per category, then forget everything."""
        for category, summary in self.summaries().items():
            logger.warning(summary, category=category, count=self.count(category))
        self._errors.clear()


def set_evaluation_id(evaluation_id: Optional[str] = None) -> str:
    """Set evaluation ID in context."""
    if evaluation_id is None:
        evaluation_id = str(uuid.uuid4())
    evaluation_id_var.set(evaluation_id)
    return evaluation_id


def set_rule_context(rule_id: Optional[str] = None, event_name: Optional[str] = None):
    """Set rule/event context in logging."""
    if rule_id:
        rule_id_var.set(rule_id)
    if event_name:
        event_name_var.set(event_name)


def clear_context():
    """Clear all context variables."""
    evaluation_id_var.set(None)
    rule_id_var.set(None)
    event_name_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
