"""
Placeholder resolution for rule values.

Tokens look like ``{category:segment1:segment2}``. A resolver registered
for ``category`` is called with ``(context, segments)``; otherwise the
segments are walked through ``context[category]``. Only scalar leaves are
substituted and anything unresolved becomes the empty string.
"""

import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from shared.logging import get_logger

from ..context import Context
from .guard import PLACEHOLDER, guarded
from .operators import is_scalar, to_str

logger = get_logger("rule_engine.placeholders")

TOKEN_PATTERN = re.compile(r"\{([^}]+)\}")

CategoryResolver = Callable[[Context, List[str]], Any]


class PlaceholderResolver:
    """Substitutes ``{category:path}`` tokens from a Context."""

    def __init__(
        self,
        context: Union[Context, Mapping[str, Any], None] = None,
        resolvers: Optional[Mapping[str, CategoryResolver]] = None,
    ):
        if context is None or not isinstance(context, Context):
            context = Context(context or {})
        self.context = context
        self.resolvers: Dict[str, CategoryResolver] = dict(resolvers or {})

    def register(self, category: str, resolver: CategoryResolver) -> None:
        self.resolvers[category] = resolver

    def resolve(self, raw: str) -> str:
        """Resolve every token in ``raw``; strings without tokens come back unchanged."""
        if not isinstance(raw, str) or "{" not in raw:
            return raw
        return TOKEN_PATTERN.sub(lambda match: self._substitute(match.group(1)), raw)

    def resolve_value(self, value: Any) -> Any:
        """Resolve strings; leave every other value untouched."""
        if isinstance(value, str):
            return self.resolve(value)
        return value

    def lookup(self, token: str) -> Any:
        """Resolve a bare token (without braces) to its raw value, or None."""
        parts = token.split(":")
        category, segments = parts[0].strip(), parts[1:]
        if not category:
            return None

        resolver = self.resolvers.get(category)
        if resolver is not None:
            return guarded(PLACEHOLDER, category, resolver, self.context, segments, default=None)

        return self._nested_lookup(category, segments)

    def _substitute(self, token: str) -> str:
        value = self.lookup(token)
        if value is None or not is_scalar(value):
            logger.debug("Unresolved placeholder", placeholder=token)
            return ""
        return to_str(value)

    def _nested_lookup(self, category: str, segments: List[str]) -> Any:
        # The whole category is never substitutable
        if not segments:
            return None

        current = self.context.get_path([category])
        for segment in segments:
            if not isinstance(current, Mapping) or segment not in current:
                return None
            current = current[segment]

        return current if is_scalar(current) else None
