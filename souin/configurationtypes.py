"""Configuration data types shared by the cache layers."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|h|m|s)")


def parse_duration(text: Any) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"300ms"`` or ``"-1.5s"``."""
    original = str(text)
    remaining = original
    sign = 1
    if remaining[:1] in ("+", "-"):
        if remaining[0] == "-":
            sign = -1
        remaining = remaining[1:]
    if remaining == "0":
        return timedelta(0)
    if not remaining:
        raise ValueError(f"invalid duration {original!r}")

    total = Decimal(0)
    position = 0
    while position < len(remaining):
        match = _COMPONENT.match(remaining, position)
        if match is None:
            raise ValueError(f"invalid duration {original!r}")
        try:
            amount = Decimal(match.group(1))
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {original!r}") from exc
        total += amount * _NANOSECONDS[match.group(2)]
        position = match.end()

    microseconds = int((total / 1000).to_integral_value())
    return timedelta(microseconds=sign * microseconds)


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(value: timedelta) -> str:
    """Render a duration the way the configuration format writes it, e.g. ``1h0m0s``."""
    nanoseconds = (
        (value.days * 86400 + value.seconds) * 1_000_000_000
        + value.microseconds * 1_000
    )
    if nanoseconds == 0:
        return "0s"
    prefix = "-" if nanoseconds < 0 else ""
    amount = abs(nanoseconds)

    if amount < 1_000:
        return f"{prefix}{amount}ns"
    if amount < 1_000_000:
        return f"{prefix}{_fraction(amount, 1_000)}µs"
    if amount < 1_000_000_000:
        return f"{prefix}{_fraction(amount, 1_000_000)}ms"

    hours, rest = divmod(amount, _NANOSECONDS["h"])
    minutes, rest = divmod(rest, _NANOSECONDS["m"])
    seconds = _fraction(rest, _NANOSECONDS["s"])
    if hours:
        return f"{prefix}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{prefix}{minutes}m{seconds}s"
    return f"{prefix}{seconds}s"


def _duration(value: Any) -> timedelta:
    if value is None or value == "":
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    return parse_duration(value)


def _strings(value: Any) -> list[str]:
    return [str(item) for item in value] if value else []


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass
class Port:
    """Listening ports."""

    web: str = ""
    tls: str = ""


@dataclass
class Cache:
    """Cache headers and ports."""

    headers: list[str] = field(default_factory=list)
    port: Port = field(default_factory=Port)


@dataclass
class Regex:
    """Requests matching ``exclude`` are never cached."""

    exclude: str = ""


@dataclass
class URL:
    """Per-URL cache configuration."""

    ttl: timedelta = timedelta(0)
    headers: list[str] = field(default_factory=list)
    default_cache_control: str = ""


@dataclass
class CacheProvider:
    """Connection settings of a storage backend."""

    url: str = ""
    path: str = ""
    configuration: Any = None


@dataclass
class Timeout:
    """Backend and cache timeouts."""

    backend: timedelta = timedelta(0)
    cache: timedelta = timedelta(0)


@dataclass
class CDN:
    """CDN settings."""

    api_key: str = ""
    dynamic: bool = False
    email: str = ""
    hostname: str = ""
    network: str = ""
    provider: str = ""
    strategy: str = ""
    service_id: str = ""
    zone_id: str = ""


_KEY_FLAGS = ("disable_body", "disable_host", "disable_method", "disable_query", "hide")


@dataclass
class Key:
    """Cache key generation strategy."""

    disable_body: bool = False
    disable_host: bool = False
    disable_method: bool = False
    disable_query: bool = False
    hide: bool = False
    headers: list[str] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Key:
        """Build a key strategy from decoded configuration data."""
        data = _mapping(data)
        headers = data.get("headers")
        return cls(
            **{name: bool(data.get(name, False)) for name in _KEY_FLAGS},
            headers=[str(h) for h in headers] if headers is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the non-empty fields, keyed by their configuration names."""
        result: dict[str, Any] = {
            name: True for name in _KEY_FLAGS if getattr(self, name)
        }
        if self.headers:
            result["headers"] = list(self.headers)
        return result


@dataclass
class CacheKeys:
    """Ordered key strategies, each bound to a request URI pattern."""

    entries: list[tuple[re.Pattern[str], Key]] = field(default_factory=list)

    def __iter__(self) -> Iterator[tuple[re.Pattern[str], Key]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> CacheKeys:
        """Build from a mapping of pattern to key settings; bad patterns raise ``re.error``."""
        return cls(
            [
                (re.compile(pattern), Key.from_mapping(settings))
                for pattern, settings in _mapping(data).items()
            ]
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> CacheKeys:
        """Build from a JSON object of pattern to key settings."""
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        decoded = json.loads(data)
        if not isinstance(decoded, dict):
            raise ValueError("cache keys must be a JSON object")
        return cls.from_mapping(decoded)

    def to_json(self) -> str:
        """Serialise to a JSON object of pattern to key settings."""
        parts = [
            f"{json.dumps(pattern.pattern, ensure_ascii=False)}: "
            f"{json.dumps(key.to_dict(), separators=(',', ':'))}"
            for pattern, key in self.entries
        ]
        return "{" + ",".join(parts) + "}"


def _provider(data: Any) -> CacheProvider:
    data = _mapping(data)
    return CacheProvider(
        url=str(data.get("url") or ""),
        path=str(data.get("path") or ""),
        configuration=data.get("configuration"),
    )


def _cdn(data: Any) -> CDN:
    data = _mapping(data)
    return CDN(
        api_key=str(data.get("api_key") or ""),
        dynamic=bool(data.get("dynamic", False)),
        email=str(data.get("email") or ""),
        hostname=str(data.get("hostname") or ""),
        network=str(data.get("network") or ""),
        provider=str(data.get("provider") or ""),
        strategy=str(data.get("strategy") or ""),
        service_id=str(data.get("service_id") or ""),
        zone_id=str(data.get("zone_id") or ""),
    )


@dataclass
class DefaultCache:
    """Default cache configuration."""

    allowed_http_verbs: list[str] = field(default_factory=list)
    badger: CacheProvider = field(default_factory=CacheProvider)
    cdn: CDN = field(default_factory=CDN)
    cache_name: str = ""
    distributed: bool = False
    headers: list[str] = field(default_factory=list)
    key: Key = field(default_factory=Key)
    etcd: CacheProvider = field(default_factory=CacheProvider)
    mode: str = ""
    nuts: CacheProvider = field(default_factory=CacheProvider)
    olric: CacheProvider = field(default_factory=CacheProvider)
    redis: CacheProvider = field(default_factory=CacheProvider)
    port: Port = field(default_factory=Port)
    regex: Regex = field(default_factory=Regex)
    stale: timedelta = timedelta(0)
    storers: list[str] = field(default_factory=list)
    timeout: Timeout = field(default_factory=Timeout)
    ttl: timedelta = timedelta(0)
    default_cache_control: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DefaultCache:
        """Build from decoded configuration data; invalid durations raise ``ValueError``."""
        data = _mapping(data)
        port = _mapping(data.get("port"))
        timeout = _mapping(data.get("timeout"))
        return cls(
            allowed_http_verbs=_strings(data.get("allowed_http_verbs")),
            badger=_provider(data.get("badger")),
            cdn=_cdn(data.get("cdn")),
            cache_name=str(data.get("cache_name") or ""),
            distributed=bool(data.get("distributed", False)),
            headers=_strings(data.get("headers")),
            key=Key.from_mapping(data.get("key")),
            etcd=_provider(data.get("etcd")),
            mode=str(data.get("mode") or ""),
            nuts=_provider(data.get("nuts")),
            olric=_provider(data.get("olric")),
            redis=_provider(data.get("redis")),
            port=Port(web=str(port.get("web") or ""), tls=str(port.get("tls") or "")),
            regex=Regex(exclude=str(_mapping(data.get("regex")).get("exclude") or "")),
            stale=_duration(data.get("stale")),
            storers=_strings(data.get("storers")),
            timeout=Timeout(
                backend=_duration(timeout.get("backend")),
                cache=_duration(timeout.get("cache")),
            ),
            ttl=_duration(data.get("ttl")),
            default_cache_control=str(data.get("default_cache_control") or ""),
        )


@dataclass
class APIEndpoint:
    """An optional API endpoint."""

    basepath: str = ""
    enable: bool = False
    security: bool = False


@dataclass
class User:
    """An API user."""

    username: str = ""
    password: str = ""


@dataclass
class SecurityAPI:
    """Security endpoint settings."""

    basepath: str = ""
    enable: bool = False
    secret: str = ""
    users: list[User] = field(default_factory=list)


@dataclass
class API:
    """All additional endpoints."""

    basepath: str = ""
    debug: APIEndpoint = field(default_factory=APIEndpoint)
    prometheus: APIEndpoint = field(default_factory=APIEndpoint)
    souin: APIEndpoint = field(default_factory=APIEndpoint)
    security: SecurityAPI = field(default_factory=SecurityAPI)


@dataclass
class SurrogateKeys:
    """Rules deciding which responses a surrogate key applies to."""

    url: str = ""
    headers: dict[str, str] | None = None


@dataclass
class AbstractConfiguration:
    """The full configuration a cache instance runs with."""

    default_cache: DefaultCache = field(default_factory=DefaultCache)
    urls: dict[str, URL] = field(default_factory=dict)
    api: API = field(default_factory=API)
    log_level: str = ""
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("souin"))
    ykeys: dict[str, SurrogateKeys] = field(default_factory=dict)
    surrogate_keys: dict[str, SurrogateKeys] = field(default_factory=dict)
    cache_keys: CacheKeys = field(default_factory=CacheKeys)