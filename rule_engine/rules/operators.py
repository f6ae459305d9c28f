"""
Operator evaluation shared by every condition handler.

``compare`` is pure and total: whatever it is given it returns a bool and
never raises. Unknown operators and malformed patterns evaluate to False.
"""

import re
from typing import Any, Callable, Iterable, Optional

from shared.logging import get_logger

from .models import ConditionValue, MatchType, Scalar, ValueList, normalize_operator

logger = get_logger("rule_engine.operators")

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_DELIMITED_REGEX = re.compile(r"^/.*/$", re.DOTALL)

OPERATORS = (
    "=", "!=", ">", ">=", "<", "<=",
    "LIKE", "NOT LIKE", "REGEXP",
    "IN", "NOT IN",
    "EXISTS", "NOT EXISTS",
    "IS", "IS NOT",
)


def is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def to_str(value: Any) -> str:
    """String cast used by the equality, pattern and membership operators.

    Non-scalars cast to the empty string; booleans cast to "1"/"" and
    integral floats lose their fractional part.
    """
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    return ""


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == value  # NaN is not numeric
    if isinstance(value, str):
        return _NUMERIC.match(value) is not None
    return False


def is_empty(value: Any) -> bool:
    """Generic emptiness: None, False, 0, 0.0, "", "0" and empty containers."""
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, str):
        return value == "" or value == "0"
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def to_bool(value: Any) -> bool:
    return not is_empty(value)


def value_exists(value: Any) -> bool:
    """Non-empty, except that zero and "0" count as present."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value == 0:
        return True
    if value == "0" and isinstance(value, str):
        return True
    return not is_empty(value)


def wildcard_to_regex(pattern: str) -> str:
    """Translate ``*``/``?`` wildcards into an anchored regular expression."""
    escaped = re.escape(pattern)
    return "^" + escaped.replace(r"\*", ".*").replace(r"\?", ".") + "$"


def like_match(subject: str, pattern: str) -> bool:
    return re.match(wildcard_to_regex(pattern), subject, re.IGNORECASE) is not None


def regexp_match(subject: str, pattern: str) -> bool:
    """``/…/`` patterns are raw regular expressions, anything else is LIKE."""
    if _DELIMITED_REGEX.match(pattern):
        try:
            return re.search(pattern[1:-1], subject) is not None
        except re.error as e:
            logger.warning("Invalid regular expression", pattern=pattern, error=str(e))
            return False
    return like_match(subject, pattern)


def _numeric_pair(actual: Any, expected: Any):
    if is_numeric(actual) and is_numeric(expected):
        return float(actual), float(expected)
    return None


def _compare(actual: Any, expected: Any, operator: str) -> bool:
    actual_str = to_str(actual)
    expected_str = to_str(expected)

    # Equality operators
    if operator == "=":
        return actual_str == expected_str
    if operator == "!=":
        return actual_str != expected_str

    # Numeric comparison operators
    if operator in (">", ">=", "<", "<="):
        pair = _numeric_pair(actual, expected)
        if pair is None:
            return False
        left, right = pair
        if operator == ">":
            return left > right
        if operator == ">=":
            return left >= right
        if operator == "<":
            return left < right
        return left <= right

    # Pattern matching operators
    if operator == "LIKE":
        return like_match(actual_str, expected_str)
    if operator == "NOT LIKE":
        return not like_match(actual_str, expected_str)
    if operator == "REGEXP":
        return regexp_match(actual_str, expected_str)

    # Membership operators
    if operator in ("IN", "NOT IN"):
        candidates = expected if isinstance(expected, (list, tuple)) else [expected]
        found = actual_str in [to_str(candidate) for candidate in candidates]
        return found if operator == "IN" else not found

    # Existence operators
    if operator == "EXISTS":
        return value_exists(actual)
    if operator == "NOT EXISTS":
        return not value_exists(actual)

    # Boolean operators
    if operator == "IS":
        return to_bool(actual) == to_bool(expected)
    if operator == "IS NOT":
        return to_bool(actual) != to_bool(expected)

    logger.warning("Unknown condition operator", operator=operator)
    return False


def compare(actual: Any, expected: Any, operator: str = "=") -> bool:
    """Compare an actual value against one expected value."""
    operator = normalize_operator(operator)
    try:
        return bool(_compare(actual, expected, operator))
    except Exception as e:
        logger.error("Error comparing values", operator=operator, error=str(e))
        return False


def evaluate(
    actual: Any,
    value: ConditionValue,
    operator: str,
    resolve: Optional[Callable[[str], str]] = None,
) -> bool:
    """Evaluate a condition value (scalar or list) against ``actual``.

    String expectations are passed through ``resolve`` first; for lists
    each element is resolved independently and the per-element results
    are folded with the list's match type.
    """
    def prepare(expected: Any) -> Any:
        if resolve is not None and isinstance(expected, str):
            return resolve(expected)
        return expected

    if isinstance(value, ValueList):
        results = [compare(actual, prepare(expected), operator) for expected in value.values]
        return combine(results, value.match_type)

    if isinstance(value, Scalar):
        return compare(actual, prepare(value.value), operator)

    return compare(actual, prepare(value), operator)


def combine(results: Iterable[bool], match_type: Any = MatchType.ANY) -> bool:
    """Fold boolean results with ``all``/``any``/``none``; unknown means ``any``."""
    try:
        policy = MatchType(match_type)
    except ValueError:
        policy = MatchType.ANY
    return policy.combine(results)
