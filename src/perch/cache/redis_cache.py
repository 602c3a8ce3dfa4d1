"""Redis-backed cache adapter for deployments with several workers.

Values are JSON-encoded so scalars keep their type across processes.
Pattern deletion walks the namespace with ``SCAN``; the key prefix is
escaped so it only ever matches itself.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable
from typing import Any

import redis

from perch.cache.adapter import CacheAdapter, Scalar, key_list

logger = logging.getLogger("perch.cache")

_GLOB_ESCAPES = str.maketrans({"*": "[*]", "?": "[?]", "[": "[[]", "\\": "[\\\\]"})


def glob_escape(text: str) -> str:
    """Make *text* match itself literally in a Redis ``MATCH`` pattern."""
    return text.translate(_GLOB_ESCAPES)


class RedisCacheAdapter(CacheAdapter):
    """Cache adapter on top of a ``redis.Redis`` client.

    Usage::

        cache = RedisCacheAdapter.from_url("redis://localhost:6379/0", prefix="shop:prod:")
        cache.set("greeting", "hello", ttl=60)
    """

    def __init__(self, client: redis.Redis, prefix: str = "") -> None:
        super().__init__(prefix)
        self.client = client

    @classmethod
    def from_url(cls, url: str, prefix: str = "", **kwargs: Any) -> RedisCacheAdapter:
        client = redis.from_url(url, decode_responses=True, **kwargs)
        logger.info("Redis cache adapter connected to %s", url)
        return cls(client, prefix)

    def ping(self) -> bool:
        return bool(self.client.ping())

    def _scan(self, match: str) -> list[str]:
        return list(self.client.scan_iter(match=match, count=500))

    def _get(self, key: str, default: Any) -> Any:
        raw = self.client.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def _set(self, key: str, value: Scalar, ttl: float | None) -> None:
        payload = json.dumps(value)
        if ttl is None:
            self.client.set(key, payload)
        else:
            self.client.set(key, payload, px=max(1, math.ceil(ttl * 1000)))

    def _delete(self, key: str) -> None:
        self.client.delete(key)

    def _has(self, key: str) -> bool:
        return self.client.exists(key) > 0

    def _clear(self) -> None:
        if not self.prefix:
            self.client.flushdb()
            return
        keys = self._scan(f"{glob_escape(self.prefix)}*")
        if keys:
            self.client.delete(*keys)

    def _delete_pattern(self, pattern: str) -> int:
        keys = self._scan(f"{glob_escape(self.prefix)}{pattern}")
        if keys:
            self.client.delete(*keys)
        logger.debug("Deleted %d keys matching %r", len(keys), pattern)
        return len(keys)

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        names = key_list(keys)
        if not names:
            return {}
        raw_values = self.client.mget([self._key(k) for k in names])
        return {
            name: default if raw is None else json.loads(raw)
            for name, raw in zip(names, raw_values, strict=True)
        }

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        names = key_list(keys)
        if names:
            self.client.delete(*(self._key(k) for k in names))
        return True
