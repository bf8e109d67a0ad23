"""TTL cache for rendered room calendars."""
from __future__ import annotations

import threading
from typing import Callable, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


def cache_key(*parts: object) -> str:
    return ":".join(str(part) for part in parts)


class SimpleTTLCache(Generic[T]):
    """Entries expire after ``ttl`` seconds; keys carry the room revision so
    a mutation in any service process makes older entries unreachable.

    Calendar reads run in the request threadpool, so every access to the
    underlying ``TTLCache`` holds ``_lock``. Building a missing value does not.
    """

    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._cache[key] = value

    def get_or_set(self, key: str, factory: Callable[[], T]) -> T:
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        with self._lock:
            return self._cache.setdefault(key, value)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
