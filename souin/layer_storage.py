"""Tracks requests that must not be coalesced with concurrent identical ones."""

from __future__ import annotations

import threading
from types import TracebackType


class CoalescingLayerStorage:
    """Set of request keys whose responses turned out to be uncoalesceable."""

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._lock = threading.Lock()
        self._closed = False

    def exists(self, key: str) -> bool:
        """Return ``True`` when ``key`` is *not* stored, i.e. the request may coalesce."""
        with self._lock:
            return key not in self._keys

    def set(self, key: str) -> None:
        """Mark ``key`` as uncoalesceable; raises ``RuntimeError`` once closed."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Impossible to set value into the layer storage")
            self._keys.add(key)

    def delete(self, key: str) -> None:
        """Forget ``key`` if it is stored."""
        with self._lock:
            self._keys.discard(key)

    def close(self) -> None:
        """Drop every stored key and refuse further writes."""
        with self._lock:
            self._keys.clear()
            self._closed = True

    def __enter__(self) -> CoalescingLayerStorage:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()