"""Tag based invalidation: each tag groups the URLs it applies to.

Purging a tag invalidates every URL stored under it and removes those URLs
from every other tag as well.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Mapping

from souin.configurationtypes import SurrogateKeys


def _header(headers: Mapping[str, str] | None, name: str) -> str:
    if not headers:
        return ""
    wanted = name.lower()
    return next((v for k, v in headers.items() if k.lower() == wanted), "")


def _search(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text) is not None
    except re.error:
        return False


class YKeyStorage:
    """Stores, for each configured tag, the comma separated URLs it covers."""

    def __init__(self, keys: Mapping[str, SurrogateKeys]) -> None:
        self.keys: dict[str, SurrogateKeys] = dict(keys)
        self._tags: dict[str, str] = {tag: "" for tag in self.keys}
        self._lock = threading.RLock()

    def get(self, tag: str) -> str | None:
        """Return the URLs stored under ``tag``, or ``None`` for an unknown tag."""
        with self._lock:
            return self._tags.get(tag)

    def get_validated_tags(
        self, key: str, headers: Mapping[str, str] | None
    ) -> list[str]:
        """Return the tags whose URL and header rules accept ``key`` and ``headers``."""
        tags = []
        for tag, rules in self.keys.items():
            if rules.url and not _search(rules.url, key):
                continue
            if rules.headers is not None and not all(
                _search(pattern, _header(headers, name))
                for name, pattern in rules.headers.items()
            ):
                continue
            tags.append(tag)
        return tags

    def invalidate_tags(self, tags: Iterable[str]) -> list[str]:
        """Invalidate every URL stored under the given tags and return them."""
        urls: list[str] = []
        with self._lock:
            for tag in tags:
                stored = self._tags.get(tag)
                if stored is not None:
                    urls.extend(self.invalidate_tag_urls(stored))
        return urls

    def invalidate_tag_urls(self, urls: str) -> list[str]:
        """Remove each of the comma separated ``urls`` from every tag and return them."""
        parts = urls.split(",")
        with self._lock:
            for url in parts:
                self._invalidate_url(url)
        return parts

    def _invalidate_url(self, url: str) -> None:
        pattern = re.compile(f"({url},)|(,{url}$)|(^{url}$)")
        for tag in self.keys:
            stored = self._tags.get(tag)
            if stored is not None and pattern.search(stored):
                self._tags[tag] = pattern.sub("", stored)

    def add_to_tags(self, url: str, tags: Iterable[str]) -> None:
        """Record ``url`` under each known tag that does not hold it yet."""
        with self._lock:
            for tag in tags:
                self._add_to_tag(url, tag)

    def _add_to_tag(self, url: str, tag: str) -> None:
        stored = self._tags.get(tag)
        if stored is None or re.search(url, stored):
            return
        self._tags[tag] = f"{stored},{url}" if stored else url


def initialize_ykeys(keys: Mapping[str, SurrogateKeys] | None) -> YKeyStorage | None:
    """Create the tag storage, or return ``None`` when no tag is configured."""
    if not keys:
        return None
    return YKeyStorage(keys)