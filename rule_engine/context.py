"""
Evaluation context for rules.

A Context is a tree keyed by top-level category (``request``, ``cookie``,
``hook``...). Categories are either merged in eagerly or produced lazily by
a provider the first time something reads them.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Set

from shared.logging import get_logger

logger = get_logger("rule_engine.context")

# Reserved category holding the arguments of the event that triggered a pass
HOOK_KEY = "hook"

Provider = Callable[[], Optional[Mapping[str, Any]]]

_MISSING = object()


def deep_merge(base: Dict[str, Any], other: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``other`` into a copy of ``base``.

    Nested mappings are merged key by key; any other value in ``other``
    replaces the one in ``base``.
    """
    merged = dict(base)
    for key, value in other.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(dict(current), value)
        else:
            merged[key] = value
    return merged


class Context:
    """Mutable, lazily-populated tree of named fragments."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self._providers: Dict[str, Provider] = {}
        self._loaded: Set[str] = set()

    def register_provider(self, key: str, provider: Provider) -> "Context":
        """Register a lazy builder for a top-level category."""
        self._providers[key] = provider
        self._loaded.discard(key)
        return self

    def load(self, key: str) -> "Context":
        """Run the provider for ``key`` once and merge its result."""
        if key in self._loaded:
            return self

        # Mark before calling so a provider reading its own key cannot recurse
        self._loaded.add(key)

        provider = self._providers.get(key)
        if provider is None:
            return self

        try:
            result = provider()
        except Exception as e:
            logger.error("Error loading context key", key=key, error=str(e))
            return self

        if isinstance(result, Mapping):
            self._data = deep_merge(self._data, result)
        return self

    def load_all(self) -> "Context":
        for key in list(self._providers):
            self.load(key)
        return self

    def merge(self, fragment: Mapping[str, Any]) -> "Context":
        for key in fragment:
            self.load(key)
        self._data = deep_merge(self._data, fragment)
        return self

    def get(self, path: str, default: Any = None) -> Any:
        """Read a dotted path, loading its top-level category first."""
        return self.get_path(path.split("."), default)

    def get_path(self, parts: Sequence[str], default: Any = None) -> Any:
        """Read a path given as segments, loading its top-level category first."""
        if not parts:
            return default
        self.load(parts[0])

        current: Any = self._data
        for part in parts:
            if not isinstance(current, Mapping):
                return default
            current = current.get(part, _MISSING)
            if current is _MISSING or current is None:
                return default
        return current

    def set(self, path: str, value: Any) -> "Context":
        """Write a dotted path, creating intermediate mappings."""
        parts = path.split(".")
        # Populate the category first so the write is not overwritten later
        self.load(parts[0])

        current = self._data
        for part in parts[:-1]:
            child = current.get(part)
            if not isinstance(child, dict):
                child = {}
                current[part] = child
            current = child
        current[parts[-1]] = value
        return self

    def has(self, path: str) -> bool:
        return self.get(path) is not None

    def keys(self):
        return set(self._data) | set(self._providers)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the data loaded so far."""
        return dict(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self.keys()

    def __getitem__(self, key: str) -> Any:
        self.load(key)
        return self._data[key]

    def __repr__(self) -> str:
        return f"Context(keys={sorted(self.keys())})"
