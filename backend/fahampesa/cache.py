# Overview: Small explicit TTL cache with an injectable clock.

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable


_MISSING = object()


class TTLCache:
    """
    Key/value cache whose entries expire ttl_seconds after they were set.

    The clock is injected so expiry can be driven deterministically in tests.
    Expired entries are evicted on read, and swept on set once the cache
    reaches max_entries. If it is still full after the sweep, the entries
    closest to expiry are dropped.
    """

    MAX_ENTRIES = 10000

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = None,
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self.max_entries = self.MAX_ENTRIES if max_entries is None else max_entries
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict_expired(now)
                overflow = len(self._entries) - self.max_entries + 1
                if overflow > 0:
                    oldest = sorted(self._entries, key=lambda k: self._entries[k][0])[:overflow]
                    for k in oldest:
                        del self._entries[k]
            self._entries[key] = (now + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
