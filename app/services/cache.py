from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Dict, Generic, Optional, TypeVar

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """In-memory TTL cache; when full, the entry closest to expiry is evicted."""

    def __init__(self, *, ttl_s: float, max_size: int) -> None:
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._store: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Optional[T]:
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.expires_at < now:
                del self._store[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl_s: Optional[float] = None) -> None:
        now = time.monotonic()
        ttl = self.ttl_s if ttl_s is None else ttl_s
        with self._lock:
            self._drop_expired(now)
            if key not in self._store and len(self._store) >= self.max_size:
                self._evict_soonest()
            self._store[key] = CacheEntry(value=value, expires_at=now + ttl)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _drop_expired(self, now: float) -> None:
        for key in [k for k, entry in self._store.items() if entry.expires_at < now]:
            del self._store[key]

    def _evict_soonest(self) -> None:
        if not self._store:
            return
        victim = min(self._store, key=lambda k: self._store[k].expires_at)
        del self._store[victim]


def normalize_address(address: str) -> str:
    """Trim, lower-case and collapse whitespace so equivalent addresses share a key."""
    return _WHITESPACE.sub(" ", address.strip().lower())
