from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """In-memory TTL cache in front of the SQLite stores.

    Entries are dropped lazily on read; writers invalidate explicitly.
    """

    def __init__(self, default_ttl_seconds: int = 120, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._default_ttl = max(1, int(default_ttl_seconds))
        self._clock = clock
        self._store: dict[K, _Entry[V]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: K) -> Optional[V]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._store.pop(key, None)
            return None
        return entry.value

    def set(self, key: K, value: V, ttl_seconds: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else max(1, int(ttl_seconds))
        self._store[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()
