"""
Unit tests for actions, argument values and the action dispatcher.
"""

import pytest
from unittest.mock import MagicMock, patch

from shared.logging import ErrorAggregator

from rule_engine.context import Context
from rule_engine.rules.actions import ActionDispatcher, LogAction
from rule_engine.rules.arguments import ArgumentValue
from rule_engine.rules.models import Action
from rule_engine.rules.placeholders import PlaceholderResolver


class TestArgumentValue:
    """Test cases for ArgumentValue."""

    @pytest.fixture
    def resolver(self):
        return PlaceholderResolver(Context({"cookie": {"sid": "abc", "count": "7"}}))

    def test_placeholders_resolved_on_read(self, resolver):
        value = ArgumentValue("session {cookie:sid}", None, resolver)

        assert value.string() == "session abc"
        assert str(value) == "session abc"

    def test_default_used_for_missing_value(self):
        assert ArgumentValue(None, "fallback").string() == "fallback"
        assert ArgumentValue(None, None).string() == ""

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), (1, True),
        ("false", False), ("no", False), ("0", False), ("", False), (None, False), (0, False),
    ])
    def test_bool(self, raw, expected):
        assert ArgumentValue(raw, None).bool() is expected

    def test_numbers(self, resolver):
        assert ArgumentValue("{cookie:count}", 0, resolver).int() == 7
        assert ArgumentValue("3.9", 0).int() == 3
        assert ArgumentValue("abc", 0).int() == 0
        assert ArgumentValue("2.5", 0).float() == 2.5
        assert ArgumentValue("x", 0).float() == 0.0

    @pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "1e999", float("inf")])
    def test_non_finite_int_falls_back_to_zero(self, raw):
        assert ArgumentValue(raw, 0).int() == 0

    def test_oversized_float_falls_back_to_zero(self):
        assert ArgumentValue(10 ** 400, 0).float() == 0.0

    def test_list(self):
        assert ArgumentValue(["a", "b"], None).list() == ["a", "b"]
        assert ArgumentValue('["a", 1]', None).list() == ["a", 1]
        assert ArgumentValue("single", None).list() == ["single"]
        assert ArgumentValue(None, None).list() == []

    def test_string_of_structures_is_json(self):
        assert ArgumentValue({"a": 1}, None).string() == '{"a": 1}'
        assert ArgumentValue(True, None).string() == "1"


class TestLogAction:
    """Test cases for the core log action."""

    def test_logs_resolved_message(self):
        context = Context({"cookie": {"sid": "abc"}})
        action = LogAction(Action("log", {"message": "sid={cookie:sid}", "level": "warning"}), context)

        with patch("rule_engine.rules.actions.logger") as logger:
            action.execute(context)

        logger.warning.assert_called_once_with("sid=abc", action="log")

    def test_msg_alias_and_default_level(self):
        context = Context()
        action = LogAction(Action("log", {"msg": "posted"}), context)

        with patch("rule_engine.rules.actions.logger") as logger:
            action.execute(context)

        logger.info.assert_called_once_with("posted", action="log")

    def test_unknown_level_falls_back_to_info(self):
        context = Context()
        action = LogAction(Action("log", {"message": "m", "level": "loud"}), context)

        with patch("rule_engine.rules.actions.logger") as logger:
            action.execute(context)

        logger.info.assert_called_once_with("m", action="log")


class TestActionDispatcher:
    """Test cases for ActionDispatcher."""

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def dispatcher(self, handlers, calls):
        handlers.register_action_callback("record", lambda config, ctx: calls.append(config.get("value")))
        handlers.register_action_callback("explode", MagicMock(side_effect=RuntimeError("boom")))
        return ActionDispatcher(handlers, ErrorAggregator())

    def test_runs_actions_in_order(self, dispatcher, calls):
        actions = [Action("record", {"value": n}) for n in (1, 2, 3)]

        executed = dispatcher.run(actions, Context())

        assert executed == 3
        assert calls == [1, 2, 3]

    def test_failure_does_not_stop_later_actions(self, handlers, calls):
        class Failing:
            def __init__(self, config, context, resolver=None):
                pass

            def execute(self, context):
                raise ValueError("bad action")

        handlers.register_action("failing", Failing)
        handlers.register_action_callback("record", lambda config, ctx: calls.append(config.get("value")))
        aggregator = ErrorAggregator()
        dispatcher = ActionDispatcher(handlers, aggregator)

        executed = dispatcher.run(
            [Action("record", {"value": 1}), Action("failing"), Action("record", {"value": 2})],
            Context()
        )

        assert calls == [1, 2]
        assert executed == 2
        assert aggregator.count("action_execution") == 1

    def test_failing_callback_is_contained(self, dispatcher, calls):
        dispatcher.run([Action("explode"), Action("record", {"value": "after"})], Context())

        assert calls == ["after"]

    def test_unknown_action_type_is_skipped(self, dispatcher, calls):
        executed = dispatcher.run([Action("missing"), Action("record", {"value": 1})], Context())

        assert executed == 1
        assert calls == [1]

    def test_locked_action_blocks_later_same_type(self, dispatcher, calls):
        dispatcher.run([Action("record", {"value": "first"}, locked=True)], Context(), rule_id="rule-a")
        executed = dispatcher.run([Action("record", {"value": "second"})], Context(), rule_id="rule-b")

        assert executed == 0
        assert calls == ["first"]
        assert dispatcher.locked_actions == {"record": "rule-a"}

    def test_reset_clears_locks(self, dispatcher, calls):
        dispatcher.run([Action("record", {"value": 1}, locked=True)], Context())
        dispatcher.reset()
        dispatcher.run([Action("record", {"value": 2})], Context())

        assert calls == [1, 2]

    def test_metrics_recorded(self, handlers, calls):
        handlers.register_action_callback("record", lambda config, ctx: calls.append(1))
        metrics = MagicMock()
        dispatcher = ActionDispatcher(handlers, metrics=metrics)

        dispatcher.run([Action("record")], Context())

        metrics.record_action.assert_called_once()
