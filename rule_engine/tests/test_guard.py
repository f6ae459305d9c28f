"""
Unit tests for handler failure isolation.
"""

from structlog.testing import capture_logs
from unittest.mock import MagicMock

from shared.errors import HandlerExecutionError
from shared.logging import ErrorAggregator

from rule_engine.rules.guard import ACTION, CONDITION, FailureBoundary, guarded


class TestFailureBoundary:
    """Test cases for FailureBoundary."""

    def test_success_returns_value(self):
        boundary = FailureBoundary(CONDITION, ErrorAggregator())

        assert boundary.call("flag", lambda: True, default=False) is True
        assert boundary.aggregator.count() == 0

    def test_failure_returns_default(self):
        aggregator = ErrorAggregator()
        metrics = MagicMock()
        boundary = FailureBoundary(ACTION, aggregator, metrics)

        result = boundary.call("redirect", MagicMock(side_effect=RuntimeError("boom")), default=None)

        assert result is None
        assert aggregator.summaries()["action_execution"] == '1 error(s) in category "action_execution": redirect: boom'
        metrics.record_failure.assert_called_once_with(ACTION, "redirect")

    def test_record_wraps_failure(self):
        with capture_logs() as logs:
            failure = FailureBoundary(CONDITION).record("cookie", KeyError())

        assert isinstance(failure, HandlerExecutionError)
        assert failure.code == "HANDLER_EXECUTION_ERROR"
        assert failure.message == "cookie: KeyError"
        assert failure.details == {"kind": CONDITION, "exception": "KeyError"}
        assert logs[0]["code"] == "HANDLER_EXECUTION_ERROR"
        assert logs[0]["handler_type"] == "cookie"

    def test_guarded(self):
        aggregator = ErrorAggregator()

        assert guarded(CONDITION, "broken", MagicMock(side_effect=ValueError("bad")), default=False,
                       aggregator=aggregator) is False
        assert aggregator.count("condition_check") == 1
