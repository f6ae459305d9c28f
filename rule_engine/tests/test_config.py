"""
Unit tests for shared configuration, errors and metrics.
"""

import pytest
from prometheus_client import CollectorRegistry

from shared.config import EngineSettings, get_settings
from shared.errors import (
    BindingError, ConfigurationError, DependencyError, HandlerExecutionError, RuleEngineException
)
from shared.metrics import MetricsCollector


class TestEngineSettings:
    """Test cases for EngineSettings."""

    def test_defaults(self):
        settings = EngineSettings()

        assert settings.log_level == "info"
        assert settings.log_rate_limit_seconds == 60
        assert settings.default_rule_order == 10
        assert settings.default_event == "init"
        assert settings.default_event_priority == 10

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("RULES_DEFAULT_EVENT", "wp")
        monkeypatch.setenv("RULES_LOG_RATE_LIMIT_SECONDS", "5")

        settings = EngineSettings()

        assert settings.default_event == "wp"
        assert settings.log_rate_limit_seconds == 5

    def test_debug_forces_debug_level(self):
        assert EngineSettings(debug=True, log_level="warning").effective_log_level == "debug"
        assert EngineSettings(log_level="warning").effective_log_level == "warning"

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            EngineSettings(default_rule_order=1000)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestErrors:
    """Test cases for the error hierarchy."""

    def test_to_response(self):
        error = ConfigurationError("Invalid rule configuration", {"field": "order"})

        response = error.to_response()

        assert response.code == "CONFIGURATION_ERROR"
        assert response.message == "Invalid rule configuration"
        assert response.details == {"field": "order"}

    @pytest.mark.parametrize("error,code,message", [
        (HandlerExecutionError("cookie", "boom"), "HANDLER_EXECUTION_ERROR", "cookie: boom"),
        (DependencyError(), "DEPENDENCY_ERROR", "Dependency unavailable"),
        (BindingError("init", "rejected"), "BINDING_ERROR", "init: rejected"),
    ])
    def test_subclasses(self, error, code, message):
        assert isinstance(error, RuleEngineException)
        assert error.code == code
        assert error.message == message
        assert str(error) == message


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def metrics(self, registry):
        return MetricsCollector("test", registry)

    def value(self, registry, name, **labels):
        return registry.get_sample_value(name, {"component": "test", **labels})

    def test_record_rule(self, metrics, registry):
        metrics.record_rule(True)
        metrics.record_rule(False)

        assert self.value(registry, "rules_processed_total") == 2
        assert self.value(registry, "rules_matched_total") == 1

    def test_record_failure(self, metrics, registry):
        metrics.record_failure("action", "log")

        assert self.value(registry, "handler_failures_total", kind="action", handler_type="log") == 1

    def test_record_binding_and_skip(self, metrics, registry):
        metrics.record_binding("bound")
        metrics.record_skip("missing_package")

        assert self.value(registry, "event_bindings_total", status="bound") == 1
        assert self.value(registry, "rules_skipped_total", reason="missing_package") == 1

    def test_time_operation(self, metrics, registry):
        with metrics.time_operation("rule_execution_duration_seconds"):
            pass

        assert self.value(registry, "rule_execution_duration_seconds_count") == 1

    def test_unregistered_collectors_coexist(self):
        MetricsCollector("a")
        MetricsCollector("b")
