"""Per-request context values computed from the cache configuration."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from souin.configurationtypes import AbstractConfiguration


class ContextKey(str, Enum):
    """Names under which request context values are stored."""

    CACHE_NAME = "souin_ctx.CACHE_NAME"
    REQUEST_CACHE_CONTROL = "souin_ctx.REQUEST_CACHE_CONTROL"
    GRAPHQL = "souin_ctx.GRAPHQL"
    HASH_BODY = "souin_ctx.HASH_BODY"
    IS_MUTATION_REQUEST = "souin_ctx.IS_MUTATION_REQUEST"
    KEY = "souin_ctx.CACHE_KEY"
    DISPLAYABLE_KEY = "souin_ctx.DISPLAYABLE_KEY"
    IGNORED_HEADERS = "souin_ctx.IGNORE_HEADERS"
    SUPPORTED_METHOD = "souin_ctx.SUPPORTED_METHOD"
    MODE = "souin_ctx.MODE"
    NOW = "souin_ctx.NOW"
    TIMEOUT_CACHE = "souin_ctx.TIMEOUT_CACHE"
    TIMEOUT_CANCEL = "souin_ctx.TIMEOUT_CANCEL"
    CACHE_CONTROL_CTX = "souin_ctx.CACHE-CONTROL-CTX"


@dataclass(frozen=True)
class Request:
    """An incoming HTTP request together with its context values."""

    method: str = "GET"
    host: str = ""
    path: str = ""
    raw_query: str = ""
    request_uri: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | None = None
    tls: bool = False
    values: Mapping[Any, Any] = field(default_factory=dict)
    deadline: float | None = None
    done: threading.Event | None = None

    def __post_init__(self) -> None:
        if not self.request_uri:
            uri = self.path + (f"?{self.raw_query}" if self.raw_query else "")
            object.__setattr__(self, "request_uri", uri)

    def header(self, name: str) -> str:
        """Return the value of a header, matched case-insensitively, or ``""``."""
        wanted = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == wanted), "")

    def value(self, key: Any) -> Any:
        """Return the context value stored under ``key``, or ``None``."""
        return self.values.get(key)

    def with_value(self, key: Any, value: Any) -> Request:
        """Return a copy of the request carrying one more context value."""
        return replace(self, values={**self.values, key: value})

    def _with_header(self, name: str, value: str) -> Request:
        wanted = name.lower()
        headers = {k: v for k, v in self.headers.items() if k.lower() != wanted}
        headers[name] = value
        return replace(self, headers=headers)


@dataclass
class RequestCacheControl:
    """Directives of a request ``Cache-Control`` header."""

    max_age: int | None = None
    max_stale: int | None = None
    max_stale_set: bool = False
    min_fresh: int | None = None
    no_cache: bool = False
    no_store: bool = False
    no_transform: bool = False
    only_if_cached: bool = False
    extensions: list[str] = field(default_factory=list)


def _seconds(name: str, text: str) -> int:
    if not text.isdigit():
        raise ValueError(f"invalid {name} value {text!r}")
    return int(text)


def parse_request_cache_control(value: str) -> RequestCacheControl:
    """Parse a request ``Cache-Control`` header; malformed deltas raise ``ValueError``."""
    result = RequestCacheControl()
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        name, has_value, argument = token.partition("=")
        name = name.strip().lower()
        argument = argument.strip().strip('"')
        if name == "max-age":
            result.max_age = _seconds(name, argument)
        elif name == "max-stale":
            result.max_stale_set = True
            result.max_stale = _seconds(name, argument) if has_value else None
        elif name == "min-fresh":
            result.min_fresh = _seconds(name, argument)
        elif name == "no-cache":
            result.no_cache = True
        elif name == "no-store":
            result.no_store = True
        elif name == "no-transform":
            result.no_transform = True
        elif name == "only-if-cached":
            result.only_if_cached = True
        else:
            result.extensions.append(token)
    return result


DEFAULT_CACHE_NAME = "Souin"


@dataclass
class CacheContext:
    """Names the cache in the Cache-Status header and parses request directives."""

    cache_name: str = ""

    def setup(self, configuration: AbstractConfiguration) -> None:
        self.cache_name = configuration.default_cache.cache_name or DEFAULT_CACHE_NAME
        configuration.logger.debug("Set %s as Cache-Status name", self.cache_name)

    def apply(self, request: Request) -> Request:
        try:
            directives: RequestCacheControl | None = parse_request_cache_control(
                request.header("Cache-Control")
            )
        except ValueError:
            directives = None
        return request.with_value(ContextKey.CACHE_NAME, self.cache_name).with_value(
            ContextKey.REQUEST_CACHE_CONTROL, directives
        )


_MUTATION_PREFIX = b'{"query":"mutation'


def is_mutation(body: bytes) -> bool:
    """Tell whether a GraphQL body holds a mutation."""
    return len(body) > len(_MUTATION_PREFIX) and body.startswith(_MUTATION_PREFIX)


@dataclass
class GraphQLContext:
    """Hashes request bodies when custom HTTP verbs are cached."""

    custom: bool = False

    def setup(self, configuration: AbstractConfiguration) -> None:
        self.custom = bool(configuration.default_cache.allowed_http_verbs)
        if self.custom:
            configuration.logger.debug(
                "Enable GraphQL logic due to your custom HTTP verbs setup."
            )

    def apply(self, request: Request) -> Request:
        hash_body = ""
        mutation = False
        if self.custom and request.body:
            if is_mutation(request.body):
                mutation = True
            else:
                hash_body = "-" + hashlib.sha256(request.body).hexdigest()
        return (
            request.with_value(ContextKey.GRAPHQL, self.custom)
            .with_value(ContextKey.HASH_BODY, hash_body)
            .with_value(ContextKey.IS_MUTATION_REQUEST, mutation)
        )


@dataclass
class KeyContext:
    """Builds the cache key of a request."""

    disable_body: bool = False
    disable_host: bool = False
    disable_method: bool = False
    disable_query: bool = False
    displayable: bool = True
    headers: list[str] | None = None
    overrides: list[tuple[Any, KeyContext]] = field(default_factory=list)

    def setup(self, configuration: AbstractConfiguration) -> None:
        key = configuration.default_cache.key
        self.disable_body = key.disable_body
        self.disable_host = key.disable_host
        self.disable_method = key.disable_method
        self.disable_query = key.disable_query
        self.displayable = not key.hide
        self.headers = key.headers
        self.overrides = [
            (
                pattern,
                KeyContext(
                    disable_body=value.disable_body,
                    disable_host=value.disable_host,
                    disable_method=value.disable_method,
                    disable_query=value.disable_query,
                    displayable=not value.hide,
                    headers=value.headers,
                ),
            )
            for pattern, value in configuration.cache_keys
        ]

    def apply(self, request: Request) -> Request:
        scheme = "https-" if request.tls else "http-"
        hash_body = request.value(ContextKey.HASH_BODY) or ""
        query = f"?{request.raw_query}" if not self.disable_query and request.raw_query else ""
        body = "" if self.disable_body else hash_body
        host = "" if self.disable_host else f"{request.host}-"
        method = "" if self.disable_method else f"{request.method}-"
        headers = self.headers
        header_values = "".join(f"-{request.header(h)}" for h in self.headers or ())
        displayable = self.displayable

        override = next(
            (ctx for pattern, ctx in self.overrides if pattern.search(request.request_uri)),
            None,
        )
        if override is not None:
            displayable = override.displayable
            query = (
                f"?{request.raw_query}"
                if not override.disable_query and request.raw_query
                else ""
            )
            if not override.disable_body:
                body = hash_body
            method = "" if override.disable_method else f"{request.method}-"
            host = "" if override.disable_host else f"{request.host}-"
            if override.headers:
                headers = override.headers
                header_values = "".join(f"-{request.header(h)}" for h in override.headers)

        key = method + scheme + host + request.path + query + body + header_values
        return (
            request.with_value(ContextKey.KEY, key)
            .with_value(ContextKey.IGNORED_HEADERS, headers)
            .with_value(ContextKey.DISPLAYABLE_KEY, displayable)
        )


DEFAULT_VERBS = ("GET", "HEAD")


@dataclass
class MethodContext:
    """Tells whether the request method may be cached."""

    allowed_verbs: tuple[str, ...] = DEFAULT_VERBS
    custom: bool = False

    def setup(self, configuration: AbstractConfiguration) -> None:
        verbs = configuration.default_cache.allowed_http_verbs
        self.custom = bool(verbs)
        self.allowed_verbs = tuple(verbs) if verbs else DEFAULT_VERBS
        configuration.logger.debug(
            "Allow %d method(s). %s.", len(self.allowed_verbs), list(self.allowed_verbs)
        )

    def apply(self, request: Request) -> Request:
        return request.with_value(
            ContextKey.SUPPORTED_METHOD, request.method in self.allowed_verbs
        )


@dataclass
class ModeContext:
    """Whether the cache strictly follows the RFC or bypasses parts of it."""

    strict: bool = False
    bypass_request: bool = False
    bypass_response: bool = False

    def setup(self, configuration: AbstractConfiguration) -> None:
        mode = configuration.default_cache.mode
        self.bypass_request = mode in ("bypass", "bypass_request")
        self.bypass_response = mode in ("bypass", "bypass_response")
        self.strict = not self.bypass_request and not self.bypass_response
        configuration.logger.debug("The cache logic will run as %s: %r", mode, self)

    def apply(self, request: Request) -> Request:
        return request.with_value(ContextKey.MODE, self)


_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _format_date(moment: datetime) -> str:
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year} {moment:%H:%M:%S} UTC"
    )


@dataclass
class NowContext:
    """Stamps the request with the current UTC time."""

    logger: Any = field(default_factory=lambda: logging.getLogger(__name__))

    def setup(self, configuration: AbstractConfiguration) -> None:
        """Use the configuration's logger for the stamped dates."""
        self.logger = configuration.logger

    def apply(self, request: Request) -> Request:
        now = datetime.now(timezone.utc)
        date = _format_date(now)
        self.logger.debug("Stamp the request with the date %s", date)
        return request._with_header("Date", date).with_value(ContextKey.NOW, now)


DEFAULT_TIMEOUT_BACKEND = timedelta(seconds=10)
DEFAULT_TIMEOUT_CACHE = timedelta(milliseconds=10)


@dataclass
class TimeoutContext:
    """Bounds the time spent on the backend and on the cache."""

    timeout_cache: timedelta = DEFAULT_TIMEOUT_CACHE
    timeout_backend: timedelta = DEFAULT_TIMEOUT_BACKEND

    def setup(self, configuration: AbstractConfiguration) -> None:
        timeout = configuration.default_cache.timeout
        self.timeout_cache = timeout.cache or DEFAULT_TIMEOUT_CACHE
        self.timeout_backend = timeout.backend or DEFAULT_TIMEOUT_BACKEND
        configuration.logger.info("Set backend timeout to %s", self.timeout_backend)
        configuration.logger.info("Set cache timeout to %s", self.timeout_cache)

    def apply(self, request: Request) -> Request:
        done = threading.Event()
        deadline = time.monotonic() + self.timeout_backend.total_seconds()
        if request.deadline is not None:
            deadline = min(deadline, request.deadline)
        cancel: Callable[[], None] = done.set
        return (
            replace(request, deadline=deadline, done=done)
            .with_value(ContextKey.TIMEOUT_CANCEL, cancel)
            .with_value(ContextKey.TIMEOUT_CACHE, self.timeout_cache)
        )


@dataclass
class Context:
    """All the context builders applied to each request."""

    cache_name: CacheContext = field(default_factory=CacheContext)
    graphql: GraphQLContext = field(default_factory=GraphQLContext)
    key: KeyContext = field(default_factory=KeyContext)
    method: MethodContext = field(default_factory=MethodContext)
    mode: ModeContext = field(default_factory=ModeContext)
    now: NowContext = field(default_factory=NowContext)
    timeout: TimeoutContext = field(default_factory=TimeoutContext)

    def init(self, configuration: AbstractConfiguration) -> None:
        """Configure every builder."""
        for builder in (self.cache_name, self.graphql, self.key, self.method,
                        self.mode, self.now, self.timeout):
            builder.setup(configuration)

    def set_base_context(self, request: Request) -> Request:
        """Apply the builders that do not depend on the request body."""
        for builder in (self.now, self.cache_name, self.method, self.timeout, self.mode):
            request = builder.apply(request)
        return request

    def set_context(self, request: Request) -> Request:
        """Apply the body hash and cache key builders."""
        return self.key.apply(self.graphql.apply(request))


def get_context() -> Context:
    """Return a fresh, unconfigured set of context builders."""
    return Context()