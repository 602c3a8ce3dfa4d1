"""In-process memory cache shared by every adapter instance.

The store lives at class level, so two ``MemoryCacheAdapter`` objects
created in the same process see the same entries (the equivalent of a
shared-memory user cache). Namespacing comes from the key prefix.
Expired entries are dropped lazily on access.
"""

import threading
from time import monotonic
from typing import Any, ClassVar

from perch.cache.adapter import CacheAdapter, Scalar, matches_pattern


class MemoryCacheAdapter(CacheAdapter):
    """Process-wide, thread-safe cache with TTL and pattern deletion."""

    # key -> (value, expires_at); expires_at is None for no expiry
    _store: ClassVar[dict[str, tuple[Scalar, float | None]]] = {}
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def _live(self, key: str) -> tuple[Scalar, float | None] | None:
        """Return the entry for *key* if present and not expired. Caller holds the lock."""
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= monotonic():
            del self._store[key]
            return None
        return entry

    def _own_keys(self) -> list[str]:
        return [k for k in self._store if k.startswith(self.prefix)]

    def _get(self, key: str, default: Any) -> Any:
        with self._lock:
            entry = self._live(key)
        return default if entry is None else entry[0]

    def _set(self, key: str, value: Scalar, ttl: float | None) -> None:
        expires_at = monotonic() + ttl if ttl is not None else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def _delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def _has(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def _clear(self) -> None:
        with self._lock:
            for key in self._own_keys():
                del self._store[key]

    def _delete_pattern(self, pattern: str) -> int:
        offset = len(self.prefix)
        with self._lock:
            doomed = [k for k in self._own_keys() if matches_pattern(pattern, k[offset:])]
            for key in doomed:
                del self._store[key]
        return len(doomed)
