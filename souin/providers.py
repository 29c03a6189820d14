"""Storage provider interfaces and the transport state shared by the cache."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Protocol

from souin.configurationtypes import URL, AbstractConfiguration
from souin.context import Context, Request
from souin.layer_storage import CoalescingLayerStorage
from souin.ykeys import YKeyStorage


class AbstractProvider(ABC):
    """A storage backend holding cached responses."""

    @abstractmethod
    def list_keys(self) -> list[str]:
        """Return every stored key."""

    @abstractmethod
    def prefix(self, key: str, request: Request) -> bytes | None:
        """Return the stored value whose key starts with ``key`` and suits ``request``."""

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the value stored under ``key``."""

    @abstractmethod
    def set(self, key: str, value: bytes, url: URL, duration: timedelta) -> None:
        """Store ``value`` under ``key`` for ``duration``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``."""

    @abstractmethod
    def delete_many(self, key: str) -> None:
        """Remove every key matching the pattern ``key``."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the backend for use."""

    @abstractmethod
    def reset(self) -> None:
        """Release the backend's resources."""


class ReconnectProvider(AbstractProvider):
    """A storage backend able to reconnect after losing its connection."""

    @abstractmethod
    def reconnect(self) -> None:
        """Re-establish the connection to the backend."""


class TransportInterface(Protocol):
    """What the response retriever needs from a transport."""

    provider: AbstractProvider | None
    coalescing_layer_storage: CoalescingLayerStorage | None
    ykey_storage: YKeyStorage | None
    surrogate_storage: Any

    def set_url(self, url: URL) -> None:
        """Record the URL configuration matched for the current request."""


@dataclass
class Transport:
    """State used to serve responses from the cache instead of the upstream."""

    transport: Any = None
    provider: AbstractProvider | None = None
    configuration_url: URL = field(default_factory=URL)
    mark_cached_responses: bool = False
    coalescing_layer_storage: CoalescingLayerStorage | None = None
    ykey_storage: YKeyStorage | None = None
    surrogate_storage: Any = None

    def set_url(self, url: URL) -> None:
        """Record the URL configuration matched for the current request."""
        self.configuration_url = url


@dataclass
class RetrieverResponseProperties:
    """Everything needed to retrieve and store a response."""

    configuration: AbstractConfiguration
    transport: TransportInterface
    regexp_urls: re.Pattern[str] = field(default_factory=lambda: re.compile(""))
    provider: AbstractProvider | None = None
    matched_url: URL = field(default_factory=URL)
    exclude_regex: re.Pattern[str] | None = None
    context: Context | None = None

    def set_matched_url_from_request(self, request: Request) -> URL:
        """Pick the URL configuration for ``request`` and hand it to the transport."""
        default = self.configuration.default_cache
        url = URL(
            ttl=default.ttl,
            headers=list(default.headers),
            default_cache_control=default.default_cache_control,
        )
        match = self.regexp_urls.search(request.host + request.path)
        matched = match.group(0) if match else ""
        if matched:
            configured = self.configuration.urls.get(matched, URL())
            if configured.ttl:
                url.ttl = configured.ttl
            if configured.headers:
                url.headers = list(configured.headers)
        self.transport.set_url(url)
        self.matched_url = url
        return url