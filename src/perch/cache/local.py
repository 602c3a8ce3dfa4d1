"""Process-local fallback cache.

Used when the distributed store is unreachable. Entries belong to the
adapter instance and are evicted least-recently-used once ``maxsize``
is reached. Pattern deletion is not supported: callers get an explicit
``UnsupportedOperationError`` instead of a silent no-op.
"""

import threading
from collections import OrderedDict
from time import monotonic
from typing import Any

from perch.cache.adapter import CacheAdapter, Scalar
from perch.cache.errors import UnsupportedOperationError


class LocalCacheAdapter(CacheAdapter):
    """Bounded LRU cache owned by a single adapter instance."""

    supports_patterns = False

    def __init__(self, prefix: str = "", maxsize: int = 1024) -> None:
        super().__init__(prefix)
        self.maxsize = maxsize
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[Scalar, float | None]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> tuple[Scalar, float | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= monotonic():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def _get(self, key: str, default: Any) -> Any:
        with self._lock:
            entry = self._live(key)
        return default if entry is None else entry[0]

    def _set(self, key: str, value: Scalar, ttl: float | None) -> None:
        expires_at = monotonic() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def _delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _has(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def _clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _delete_pattern(self, pattern: str) -> int:
        msg = (
            f"{type(self).__name__} does not support deleting keys by pattern. "
            f'Use the "clear" method instead.'
        )
        raise UnsupportedOperationError(msg)
