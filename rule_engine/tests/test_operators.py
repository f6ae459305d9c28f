"""
Unit tests for condition operators.
"""

import pytest

from rule_engine.rules.models import MatchType, Scalar, ValueList
from rule_engine.rules.operators import (
    combine, compare, evaluate, is_numeric, like_match, regexp_match,
    to_str, value_exists
)


class TestCompare:
    """Test cases for the single-value operator table."""

    def test_equality_casts_to_string(self):
        assert compare("5", 5, "=") is True
        assert compare(5.0, "5", "=") is True
        assert compare("abc", "abd", "!=") is True
        assert compare(True, "1", "=") is True

    def test_non_scalars_cast_to_empty_string(self):
        assert compare(["a"], "", "=") is True
        assert compare({"a": 1}, "a", "=") is False

    def test_numeric_operators_need_numeric_operands(self):
        assert compare("abc", "5", ">") is False
        assert compare("10", "5", ">") is True
        assert compare("5", "5", ">=") is True
        assert compare("4.5", "5", "<") is True
        assert compare("5", "abc", "<=") is False
        assert compare(None, 1, "<") is False

    def test_in_coerces_scalar_expected_to_list(self):
        assert compare("10", "5", "IN") is False
        assert compare("5", "5", "IN") is True
        assert compare("b", ["a", "b"], "IN") is True
        assert compare("z", ["a", "b"], "NOT IN") is True

    def test_exists_treats_zero_as_present(self):
        assert compare(0, "", "EXISTS") is True
        assert compare("0", "", "EXISTS") is True
        assert compare("", "", "EXISTS") is False
        assert compare(None, "", "EXISTS") is False
        assert compare([], "", "NOT EXISTS") is True
        assert compare("value", "", "NOT EXISTS") is False

    def test_is_compares_booleans(self):
        assert compare("yes", True, "IS") is True
        assert compare("", True, "IS") is False
        assert compare(0, False, "IS") is True
        assert compare("1", False, "IS NOT") is True

    def test_like_wildcards(self):
        assert compare("report-2024.pdf", "report*", "LIKE") is True
        assert compare("notreport", "report*", "LIKE") is False
        assert compare("REPORT-1", "report-?", "LIKE") is True
        assert compare("report-12", "report-?", "NOT LIKE") is True

    def test_regexp_delimited_and_wildcard(self):
        assert compare("/blog/2024/post", "/^\\/blog\\/\\d+/", "REGEXP") is True
        assert compare("/shop", "/^\\/blog/", "REGEXP") is False
        assert compare("report-1", "report*", "REGEXP") is True

    def test_malformed_regexp_is_false(self):
        assert compare("abc", "/([a-z/", "REGEXP") is False

    def test_operator_is_normalized(self):
        assert compare("a", ["a"], " in ") is True
        assert compare("abc", "a*", "like") is True

    def test_unknown_operator_is_false(self):
        assert compare("a", "a", "APPROX") is False
        assert compare("a", "a", None) is True  # non-string falls back to "="

    @pytest.mark.parametrize("actual,expected,operator", [
        (object(), object(), "="),
        (float("nan"), "1", ">"),
        ({"a": [1]}, {"b": 2}, "IN"),
        (b"bytes", "/[/", "REGEXP"),
        (None, None, "IS NOT"),
    ])
    def test_compare_is_total(self, actual, expected, operator):
        result = compare(actual, expected, operator)

        assert isinstance(result, bool)


class TestHelpers:
    """Test cases for operator helpers."""

    def test_to_str(self):
        assert to_str(None) == ""
        assert to_str(False) == ""
        assert to_str(3.0) == "3"
        assert to_str(3.5) == "3.5"

    def test_is_numeric(self):
        assert is_numeric("10") is True
        assert is_numeric(" -1.5e3 ") is True
        assert is_numeric("1a") is False
        assert is_numeric(True) is False

    def test_value_exists(self):
        assert value_exists(0) is True
        assert value_exists("0") is True
        assert value_exists(0.0) is False
        assert value_exists(False) is False

    def test_like_match_is_anchored(self):
        assert like_match("abc", "b") is False
        assert like_match("a.c", "a.c") is True
        assert like_match("abc", "a.c") is False

    def test_regexp_match_plain_pattern_falls_back_to_like(self):
        assert regexp_match("Session_ID", "session_*") is True


class TestMultiValue:
    """Test cases for list-valued conditions."""

    @pytest.fixture
    def letters(self):
        return ("a", "b", "c")

    def test_none_policy(self, letters):
        value = ValueList(letters, MatchType.NONE)

        assert evaluate("z", value, "=") is True
        assert evaluate("b", value, "=") is False

    def test_all_policy(self, letters):
        assert evaluate("abc", ValueList(("a*", "*c"), MatchType.ALL), "LIKE") is True
        assert evaluate("abc", ValueList(letters, MatchType.ALL), "=") is False

    def test_any_policy_is_default(self, letters):
        assert evaluate("c", ValueList(letters), "=") is True
        assert evaluate("d", ValueList(letters), "=") is False

    def test_each_element_is_resolved(self):
        resolved = []

        def resolve(raw):
            resolved.append(raw)
            return raw.replace("{x}", "b")

        assert evaluate("b", ValueList(("a", "{x}", 3)), "=", resolve) is True
        assert resolved == ["a", "{x}"]

    def test_scalar_value_is_resolved(self):
        assert evaluate("abc", Scalar("{token}"), "=", lambda raw: "abc") is True

    def test_combine_unknown_match_type_means_any(self):
        assert combine([False, True], "bogus") is True
        assert combine([False, False], "bogus") is False
        assert combine([], MatchType.ALL) is True
        assert combine([], MatchType.NONE) is True
