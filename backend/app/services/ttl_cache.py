import time
from collections.abc import Hashable, Iterable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small in-memory cache with per-entry expiry and bulk eviction.

    Entries live for ``ttl_seconds`` from their last ``set``. When a new key
    is inserted into a full cache, expired entries are purged first; if that
    frees nothing, the ``eviction_count`` oldest entries are dropped.
    """

    def __init__(self, max_size: int = 1000, ttl_seconds: float = 300.0, eviction_count: int = 1):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.eviction_count = max(1, eviction_count)
        # Insertion-ordered; re-set keys move to the end
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._evict()
        self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    def get_many(self, keys: Iterable[Hashable]) -> dict[Hashable, V]:
        found = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                found[key] = value
        return found

    def set_many(self, items: Iterable[tuple[Hashable, V]]) -> None:
        for key, value in items:
            self.set(key, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    @property
    def stats(self) -> dict:
        return {"size": len(self._entries), "max_size": self.max_size, "ttl_seconds": self.ttl_seconds}

    def _evict(self) -> None:
        now = time.monotonic()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if len(self._entries) < self.max_size:
            return
        for key in list(self._entries)[: self.eviction_count]:
            del self._entries[key]
