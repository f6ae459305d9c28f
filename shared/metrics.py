"""
Shared metrics configuration for the rule engine.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for engine components.

    Metrics are only exported when a ``registry`` is supplied; with the
    default ``None`` they are created unregistered so that several
    collectors can coexist in one process (tests, multiple engines).
    """

    def __init__(self, component: str, registry: Optional[CollectorRegistry] = None):
        self.component = component
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the rule engine metrics."""

        # Rule evaluation
        self._metrics["rules_processed_total"] = Counter(
            "rules_processed_total",
            "Total rules processed",
            ["component"],
            registry=self.registry
        )

        self._metrics["rules_matched_total"] = Counter(
            "rules_matched_total",
            "Total rules whose conditions matched",
            ["component"],
            registry=self.registry
        )

        self._metrics["rules_skipped_total"] = Counter(
            "rules_skipped_total",
            "Total rules skipped before evaluation",
            ["component", "reason"],
            registry=self.registry
        )

        self._metrics["rule_execution_duration_seconds"] = Histogram(
            "rule_execution_duration_seconds",
            "Rule pass duration in seconds",
            ["component"],
            registry=self.registry
        )

        # Actions and handlers
        self._metrics["actions_executed_total"] = Counter(
            "actions_executed_total",
            "Total actions executed",
            ["component"],
            registry=self.registry
        )

        self._metrics["handler_failures_total"] = Counter(
            "handler_failures_total",
            "Total condition/action handler failures",
            ["component", "kind", "handler_type"],
            registry=self.registry
        )

        # Host event binding
        self._metrics["event_bindings_total"] = Counter(
            "event_bindings_total",
            "Total host event binding attempts",
            ["component", "status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_rule(self, matched: bool):
        """Record one processed rule."""
        self.increment_counter("rules_processed_total")
        if matched:
            self.increment_counter("rules_matched_total")

    def record_skip(self, reason: str):
        self.increment_counter("rules_skipped_total", reason=reason)

    def record_action(self):
        self.increment_counter("actions_executed_total")

    def record_failure(self, kind: str, handler_type: str):
        """Record a handler failure."""
        self.increment_counter("handler_failures_total", kind=kind, handler_type=handler_type or "unknown")

    def record_binding(self, status: str):
        self.increment_counter("event_bindings_total", status=status)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(component=self.component, **labels).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(component=self.component, **labels).inc()

