"""TTL cache used for rarely changing lookup lists."""
from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class LookupCache(Generic[T]):
    """Keyed TTL cache that loads missing entries on demand."""

    def __init__(self, ttl: int, maxsize: int = 128) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, key: str) -> Optional[T]:
        return self._cache.get(key)

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        value = loader()
        self._cache[key] = value
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one entry, or everything when no key is given."""
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)
