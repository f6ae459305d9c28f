"""
Unit tests for placeholder resolution.
"""

import pytest
from unittest.mock import MagicMock

from rule_engine.context import Context
from rule_engine.rules.placeholders import PlaceholderResolver


class TestPlaceholderResolver:
    """Test cases for PlaceholderResolver."""

    @pytest.fixture
    def context(self):
        return Context({
            "request": {"method": "POST", "headers": {"x-test": "1"}},
            "cookie": {"session_id": "abc"},
            "user": {"id": 42, "roles": ["admin"], "active": True},
        })

    @pytest.fixture
    def resolver(self, context):
        return PlaceholderResolver(context)

    def test_string_without_tokens_is_unchanged(self, resolver):
        assert resolver.resolve("plain value") == "plain value"
        assert resolver.resolve("") == ""

    def test_non_strings_are_unchanged(self, resolver):
        assert resolver.resolve_value(5) == 5
        assert resolver.resolve_value(["{cookie:session_id}"]) == ["{cookie:session_id}"]

    def test_nested_lookup(self, resolver):
        assert resolver.resolve("{cookie:session_id}") == "abc"
        assert resolver.resolve("{request:headers:x-test}") == "1"
        assert resolver.resolve("user-{user:id}") == "user-42"

    def test_multiple_tokens(self, resolver):
        assert resolver.resolve("{request:method} {cookie:session_id}") == "POST abc"

    def test_unresolved_token_becomes_empty_string(self, resolver):
        assert resolver.resolve("{cookie:does_not_exist}") == ""
        assert resolver.resolve("[{missing:path}]") == "[]"

    def test_non_scalar_leaf_is_not_substituted(self, resolver):
        assert resolver.resolve("{user:roles}") == ""
        assert resolver.resolve("{request:headers}") == ""

    def test_whole_category_is_not_substituted(self, resolver):
        assert resolver.resolve("{cookie}") == ""

    def test_boolean_leaf(self, resolver):
        assert resolver.resolve("{user:active}") == "1"

    def test_custom_category_resolver(self, context):
        lookup = MagicMock(return_value="resolved")
        resolver = PlaceholderResolver(context, {"env": lookup})

        assert resolver.resolve("{env:HOME:sub}") == "resolved"
        lookup.assert_called_once_with(context, ["HOME", "sub"])

    def test_custom_resolver_takes_precedence(self, context):
        resolver = PlaceholderResolver(context)
        resolver.register("cookie", lambda ctx, segments: segments[0].upper())

        assert resolver.resolve("{cookie:session_id}") == "SESSION_ID"

    def test_failing_custom_resolver_yields_empty_string(self, context):
        resolver = PlaceholderResolver(context, {"boom": MagicMock(side_effect=RuntimeError("fail"))})

        assert resolver.resolve("x{boom:y}x") == "xx"

    def test_resolution_reads_current_context(self, context, resolver):
        assert resolver.resolve("{cookie:session_id}") == "abc"

        context.set("cookie.session_id", "def")

        assert resolver.resolve("{cookie:session_id}") == "def"

    def test_plain_mapping_is_wrapped(self):
        resolver = PlaceholderResolver({"a": {"b": "c"}})

        assert resolver.resolve("{a:b}") == "c"

    def test_lazy_category_is_loaded(self):
        context = Context()
        context.register_provider("param", lambda: {"param": {"page": "2"}})

        assert PlaceholderResolver(context).resolve("{param:page}") == "2"
