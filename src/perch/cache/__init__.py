"""Cache adapters — memory, Redis, and a process-local fallback.

All adapters share the ``CacheAdapter`` surface::

    from perch.cache import MemoryCacheAdapter

    cache = MemoryCacheAdapter(prefix="shop:prod:")
    cache.set("visits", 1)
    cache.delete_by_key_pattern("repository:*")
"""

from perch.cache.adapter import CacheAdapter
from perch.cache.errors import (
    CacheKeyError,
    CacheValueError,
    InvalidCacheArgumentError,
    UnsupportedOperationError,
)
from perch.cache.factory import create_cache_adapter
from perch.cache.local import LocalCacheAdapter
from perch.cache.memory import MemoryCacheAdapter
from perch.cache.redis_cache import RedisCacheAdapter

__all__ = [
    "CacheAdapter",
    "CacheKeyError",
    "CacheValueError",
    "InvalidCacheArgumentError",
    "LocalCacheAdapter",
    "MemoryCacheAdapter",
    "RedisCacheAdapter",
    "UnsupportedOperationError",
    "create_cache_adapter",
]
