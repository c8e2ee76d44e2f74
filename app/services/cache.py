# app/services/cache.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol


class CacheStore(Protocol):
    """
    Minimal key -> value store with per-entry TTL (seconds).
    """

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


class InMemoryCacheStore:
    """
    Process-local TTL cache.

    Expired entries are dropped lazily on access. There is no locking:
    two concurrent misses for the same key both fetch, which is harmless
    for idempotent reads.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
