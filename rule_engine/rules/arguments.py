"""
Typed, lazily-resolved access to action arguments.
"""

import json
from typing import Any, List, Optional

from .placeholders import PlaceholderResolver

_TRUE_STRINGS = ("true", "yes", "1")
_FALSE_STRINGS = ("false", "no", "0", "")


class ArgumentValue:
    """Wraps one raw argument; placeholders are resolved on first read."""

    def __init__(self, raw_value: Any, default: Any, resolver: Optional[PlaceholderResolver] = None):
        self.raw_value = default if raw_value is None else raw_value
        self.resolver = resolver
        self._resolved: Any = None
        self._is_resolved = False

    def raw(self) -> Any:
        if not self._is_resolved:
            if isinstance(self.raw_value, str) and self.resolver is not None:
                self._resolved = self.resolver.resolve(self.raw_value)
            else:
                self._resolved = self.raw_value
            self._is_resolved = True
        return self._resolved

    def string(self) -> str:
        value = self.raw()
        if value is None:
            return ""
        if isinstance(value, (list, dict, tuple)):
            return json.dumps(value)
        if isinstance(value, bool):
            return "1" if value else ""
        if isinstance(value, (str, int, float)):
            return str(value)
        return ""

    def bool(self) -> bool:
        value = self.raw()
        if value is None:
            return False
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return bool(value)

    def int(self) -> int:
        value = self.raw()
        try:
            return int(float(value)) if isinstance(value, str) else int(value or 0)
        except (TypeError, ValueError, OverflowError):
            return 0

    def float(self) -> float:
        value = self.raw()
        try:
            return float(value or 0)
        except (TypeError, ValueError, OverflowError):
            return 0.0

    def list(self) -> List[Any]:
        """Lists pass through, JSON strings are decoded, scalars are wrapped."""
        value = self.raw()
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str) and value:
            try:
                decoded = json.loads(value)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return decoded
        return [value]

    def __str__(self) -> str:
        return self.string()

    def __repr__(self) -> str:
        return f"ArgumentValue({self.raw_value!r})"
