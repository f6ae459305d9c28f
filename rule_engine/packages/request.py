"""
HTTP request package.

Builds the ``request``, ``cookie`` and ``param`` categories from a
WSGI-style environ mapping and contributes the request conditions and the
``{cookie:...}``, ``{header:...}`` and ``{param:...}`` placeholders.
"""

from http.cookies import CookieError, SimpleCookie
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qs, quote, urlsplit

from ..context import Context
from ..rules.conditions import BaseCondition, extractor_condition
from ..rules.handlers import CONDITIONS, HandlerRegistry
from ..rules.models import Condition
from ..rules.operators import regexp_match
from ..rules.placeholders import CategoryResolver
from .base import BasePackage, FragmentProvider

Environ = Mapping[str, Any]
EnvironSource = Union[Environ, Callable[[], Optional[Environ]], None]

# Proxy headers first, the socket address last
CLIENT_IP_KEYS = (
    "HTTP_CF_CONNECTING_IP",
    "HTTP_X_FORWARDED_FOR",
    "HTTP_X_REAL_IP",
    "REMOTE_ADDR",
)

# WSGI keeps these two headers outside the HTTP_ namespace
UNPREFIXED_HEADERS = {"CONTENT_TYPE": "content-type", "CONTENT_LENGTH": "content-length"}

CONDITION_ALIASES = {
    "method": "request_method",
    "url": "request_url",
    "header": "request_header",
    "param": "request_param",
    "request_cookie": "cookie",
}


def _lookup_insensitive(values: Any, name: str) -> Any:
    if not isinstance(values, Mapping) or not name:
        return None
    lowered = name.lower()
    for key, value in values.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def _condition_name(config: Condition, alias: str) -> str:
    name = config.name or config.get(alias) or ""
    return name if isinstance(name, str) else ""


# Extractors

def request_method_value(config: Condition, context: Context) -> str:
    return context.get("request.method", "")


def request_url_value(config: Condition, context: Context) -> str:
    return context.get("request.uri", "")


def request_header_value(config: Condition, context: Context) -> str:
    value = _lookup_insensitive(context.get("request.headers", {}), _condition_name(config, "header"))
    return value if isinstance(value, str) else ""


def request_param_value(config: Condition, context: Context) -> Any:
    name = _condition_name(config, "param")
    params = context.get("param", {})
    if not name or not isinstance(params, Mapping):
        return ""
    value = params.get(name, "")
    return value if isinstance(value, (str, list)) else ""


class CookieCondition(BaseCondition):
    """Cookie condition.

    ``name`` is an exact (case-insensitive) cookie name, a ``*``/``?``
    wildcard or a ``/regex/``. Without a configured value the condition is
    an existence check: ``=``, ``IS`` and ``EXISTS`` test presence, ``!=``,
    ``IS NOT`` and ``NOT EXISTS`` test absence. Without a name it tests
    whether any cookie is present.
    """

    argument_mapping = ("name", "value")

    ABSENCE_OPERATORS = ("!=", "IS NOT", "NOT EXISTS")

    def get_type(self) -> str:
        return "cookie"

    def matches(self, context: Context) -> bool:
        name = _condition_name(self.config, "cookie")
        cookies = self._cookies(context)

        if not name:
            return bool(cookies)

        if not self.config.has_value:
            exists = self._find(name, cookies) is not None
            return not exists if self.operator in self.ABSENCE_OPERATORS else exists

        return super().matches(context)

    def get_actual_value(self, context: Context) -> str:
        name = _condition_name(self.config, "cookie")
        if not name:
            return ""
        value = self._find(name, self._cookies(context))
        return value if value is not None else ""

    @staticmethod
    def _cookies(context: Context) -> Dict[str, str]:
        cookies = context.get("cookie", {})
        if not isinstance(cookies, Mapping):
            return {}
        return {
            key: str(value) for key, value in cookies.items()
            if isinstance(key, str) and isinstance(value, (str, int, float)) and not isinstance(value, bool)
        }

    @staticmethod
    def _find(name: str, cookies: Mapping[str, str]) -> Optional[str]:
        for key, value in cookies.items():
            if regexp_match(key, name):
                return value
        return None


# Placeholders

def cookie_placeholder(context: Context, segments: List[str]) -> Any:
    if not segments:
        return None
    return _lookup_insensitive(context.get("cookie", {}), segments[0])


def header_placeholder(context: Context, segments: List[str]) -> Any:
    if not segments:
        return None
    return _lookup_insensitive(context.get("request.headers", {}), segments[0])


def param_placeholder(context: Context, segments: List[str]) -> Any:
    if not segments:
        return None
    params = context.get("param", {})
    if not isinstance(params, Mapping):
        return None
    return params.get(segments[0])


class RequestPackage(BasePackage):
    """Request data for the current WSGI environ."""

    def __init__(self, environ: EnvironSource = None):
        super().__init__()
        self._environ_source = environ

    @property
    def name(self) -> str:
        return "request"

    @property
    def namespaces(self) -> List[str]:
        return ["request", "cookie", "param"]

    def required_packages(self) -> List[str]:
        return ["core"]

    def is_available(self) -> bool:
        return True

    def set_environ(self, environ: EnvironSource) -> None:
        """Point the package at another request (a mapping or a getter)."""
        self._environ_source = environ

    @property
    def environ(self) -> Environ:
        source = self._environ_source
        if callable(source):
            source = source()
        return source if isinstance(source, Mapping) else {}

    # Context

    def context_providers(self) -> Dict[str, FragmentProvider]:
        return {
            "request": lambda: {"request": self.build_request(self.environ)},
            "cookie": lambda: {"cookie": self.parse_cookies(self.environ)},
            "param": lambda: {"param": self.parse_params(self.environ)},
        }

    def build_request(self, environ: Environ) -> Dict[str, Any]:
        uri = self._request_uri(environ)
        return {
            "method": self._var(environ, "REQUEST_METHOD", "GET").upper(),
            "uri": uri,
            "scheme": self._scheme(environ),
            "host": self._var(environ, "HTTP_HOST") or self._var(environ, "SERVER_NAME"),
            "path": urlsplit(uri).path if uri else "",
            "query": self._var(environ, "QUERY_STRING"),
            "referer": self._var(environ, "HTTP_REFERER"),
            "user_agent": self._var(environ, "HTTP_USER_AGENT"),
            "headers": self.parse_headers(environ),
            "ip": self.client_ip(environ),
        }

    @staticmethod
    def parse_headers(environ: Environ) -> Dict[str, str]:
        """Request headers keyed by lower-case, dash-separated name."""
        headers = {}
        for key, value in environ.items():
            if not isinstance(value, str):
                continue
            if key.startswith("HTTP_"):
                headers[key[5:].lower().replace("_", "-")] = value
            elif key in UNPREFIXED_HEADERS:
                headers[UNPREFIXED_HEADERS[key]] = value
        return headers

    def parse_cookies(self, environ: Environ) -> Dict[str, str]:
        """Cookies from the Cookie header, one ``name=value`` pair at a time.

        A pair the cookie parser rejects is dropped on its own. Values it
        only partly understands (spaces or JSON in the value) and reserved
        names keep their raw text.
        """
        raw = self._var(environ, "HTTP_COOKIE")
        cookies: Dict[str, str] = {}
        for pair in raw.split(";"):
            name, sep, value = pair.strip().partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            value = value.strip()
            cookie = SimpleCookie()
            try:
                cookie.load(f"{name}={value}")
            except CookieError as e:
                self.logger.warning("Malformed cookie", cookie=name, error=str(e))
                continue
            morsel = cookie.get(name)
            if morsel is not None and morsel.coded_value == value:
                cookies[name] = morsel.value
            else:
                cookies[name] = value
        return cookies

    def parse_params(self, environ: Environ) -> Dict[str, Any]:
        """Query parameters; repeated names keep every value."""
        parsed = parse_qs(self._var(environ, "QUERY_STRING"), keep_blank_values=True)
        return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}

    def client_ip(self, environ: Environ) -> str:
        for key in CLIENT_IP_KEYS:
            value = self._var(environ, key)
            if value:
                return value.split(",")[0].strip()
        return ""

    @staticmethod
    def _var(environ: Environ, key: str, default: str = "") -> str:
        value = environ.get(key, default)
        return value if isinstance(value, str) else default

    def _request_uri(self, environ: Environ) -> str:
        uri = self._var(environ, "REQUEST_URI") or self._var(environ, "RAW_URI")
        if uri:
            return uri
        path = quote(self._var(environ, "SCRIPT_NAME") + self._var(environ, "PATH_INFO"))
        if not path:
            return ""
        query = self._var(environ, "QUERY_STRING")
        return f"{path}?{query}" if query else path

    def _scheme(self, environ: Environ) -> str:
        scheme = self._var(environ, "wsgi.url_scheme")
        if scheme:
            return scheme
        return "https" if self._var(environ, "HTTPS").lower() == "on" else "http"

    # Handlers

    def register_handlers(self, handlers: HandlerRegistry) -> None:
        handlers.register_condition(
            "request_method", extractor_condition("request_method", request_method_value), owner=self.name
        )
        handlers.register_condition(
            "request_url", extractor_condition("request_url", request_url_value), owner=self.name
        )
        handlers.register_condition(
            "request_header",
            extractor_condition("request_header", request_header_value, ("name", "value")),
            owner=self.name
        )
        handlers.register_condition(
            "request_param",
            extractor_condition("request_param", request_param_value, ("name", "value")),
            owner=self.name
        )
        handlers.register_condition("cookie", CookieCondition, owner=self.name)

    def placeholder_resolvers(self) -> Dict[str, CategoryResolver]:
        return {
            "cookie": cookie_placeholder,
            "header": header_placeholder,
            "param": param_placeholder,
        }

    def resolve_handler_name(self, type_name: str, kind: str) -> Optional[str]:
        if kind == CONDITIONS:
            return CONDITION_ALIASES.get(type_name)
        return None
