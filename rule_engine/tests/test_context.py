"""
Unit tests for the evaluation Context.
"""

import pytest
from unittest.mock import MagicMock

from rule_engine.context import Context, deep_merge


class TestDeepMerge:
    """Test cases for deep_merge."""

    def test_nested_mappings_merge(self):
        merged = deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3, "z": 4}})

        assert merged == {"a": {"x": 1, "y": 3, "z": 4}}

    def test_non_mappings_replace(self):
        merged = deep_merge({"a": [1, 2], "b": {"c": 1}}, {"a": [3], "b": "flat"})

        assert merged == {"a": [3], "b": "flat"}

    def test_inputs_are_not_mutated(self):
        base = {"a": {"x": 1}}
        deep_merge(base, {"a": {"x": 2}})

        assert base == {"a": {"x": 1}}


class TestContext:
    """Test cases for Context."""

    @pytest.fixture
    def context(self):
        return Context({"request": {"method": "GET", "headers": {"host": "example.com"}}})

    def test_get_dotted_path(self, context):
        assert context.get("request.method") == "GET"
        assert context.get("request.headers.host") == "example.com"

    def test_get_missing_returns_default(self, context):
        assert context.get("request.missing") is None
        assert context.get("request.method.deeper", "fallback") == "fallback"
        assert context.get("nothing", {}) == {}

    def test_set_creates_intermediate_mappings(self, context):
        context.set("hook.args.first", 1)

        assert context.get("hook.args.first") == 1
        assert context.has("hook.args")

    def test_set_replaces_scalar_with_mapping(self, context):
        context.set("request.method.upper", True)

        assert context.get("request.method") == {"upper": True}

    def test_provider_runs_lazily_once(self):
        provider = MagicMock(return_value={"cookie": {"sid": "1"}})
        context = Context()
        context.register_provider("cookie", provider)

        provider.assert_not_called()
        assert context.get("cookie.sid") == "1"
        assert context.get("cookie.sid") == "1"
        provider.assert_called_once()

    def test_provider_reading_its_own_key_does_not_recurse(self):
        context = Context()

        def provider():
            context.get("loop.value")
            return {"loop": {"value": "done"}}

        context.register_provider("loop", provider)

        assert context.get("loop.value") == "done"

    def test_failing_provider_is_ignored(self):
        context = Context({"other": "kept"})
        context.register_provider("broken", MagicMock(side_effect=RuntimeError("boom")))

        assert context.get("broken.key") is None
        assert context.get("other") == "kept"

    def test_set_loads_category_before_writing(self):
        context = Context()
        context.register_provider("request", lambda: {"request": {"method": "GET", "uri": "/"}})

        context.set("request.method", "POST")

        assert context.get("request.method") == "POST"
        assert context.get("request.uri") == "/"

    def test_merge_is_deep(self, context):
        context.merge({"request": {"uri": "/a"}})

        assert context.get("request.method") == "GET"
        assert context.get("request.uri") == "/a"

    def test_merge_overrides_lazy_category(self):
        context = Context()
        context.register_provider("request", lambda: {"request": {"method": "GET", "uri": "/"}})

        context.merge({"request": {"method": "POST"}})

        assert context.get("request") == {"method": "POST", "uri": "/"}

    def test_load_all_and_to_dict(self):
        context = Context()
        context.register_provider("a", lambda: {"a": 1})
        context.register_provider("b", lambda: {"b": 2})

        assert context.to_dict() == {}
        assert context.load_all().to_dict() == {"a": 1, "b": 2}

    def test_keys_include_unloaded_providers(self):
        context = Context({"a": 1})
        context.register_provider("b", lambda: {"b": 2})

        assert context.keys() == {"a", "b"}
        assert "b" in context
        assert context["b"] == 2
