"""Pick a cache adapter from ``AppConfig``.

``cache_backend`` selects the adapter:

- ``"redis"``  -- ``RedisCacheAdapter``; connection errors propagate
- ``"memory"`` -- ``MemoryCacheAdapter``
- ``"local"``  -- ``LocalCacheAdapter``
- ``"auto"``   -- Redis when ``redis_url`` is set and answers ``PING``,
  ``LocalCacheAdapter`` when it does not, ``MemoryCacheAdapter`` when no
  URL is configured
"""

import logging

import redis

from perch.cache.adapter import CacheAdapter
from perch.cache.local import LocalCacheAdapter
from perch.cache.memory import MemoryCacheAdapter
from perch.cache.redis_cache import RedisCacheAdapter
from perch.config import AppConfig
from perch.errors import ConfigurationError

logger = logging.getLogger("perch.cache")

BACKENDS = ("auto", "redis", "memory", "local")


def create_cache_adapter(config: AppConfig) -> CacheAdapter:
    """Build the cache adapter described by *config*."""
    backend = config.cache_backend
    prefix = config.cache_prefix

    if backend not in BACKENDS:
        msg = f"Unknown cache_backend {backend!r}. Expected one of: {', '.join(BACKENDS)}"
        raise ConfigurationError(msg)

    if backend == "memory":
        return MemoryCacheAdapter(prefix)
    if backend == "local":
        return LocalCacheAdapter(prefix, maxsize=config.local_cache_size)

    if backend == "redis":
        if not config.redis_url:
            msg = "cache_backend='redis' requires AppConfig.redis_url"
            raise ConfigurationError(msg)
        adapter = RedisCacheAdapter.from_url(config.redis_url, prefix)
        adapter.ping()
        return adapter

    if not config.redis_url:
        return MemoryCacheAdapter(prefix)

    try:
        adapter = RedisCacheAdapter.from_url(config.redis_url, prefix)
        adapter.ping()
    except redis.RedisError as exc:
        logger.warning(
            "Redis at %s is unavailable (%s); falling back to a process-local cache",
            config.redis_url,
            exc,
        )
        return LocalCacheAdapter(prefix, maxsize=config.local_cache_size)
    return adapter
