"""Read-through cached repository over an ``EntityStore``.

Lookups are cached under a key derived from the query shape
(see ``RepositoryQueryKey``). A hit rebuilds entities from the cached
JSON; a miss asks the store, records the request in the query log,
stores the full field dump without expiry, and returns the live result.

Cached entries never expire on their own. Every ``add`` and ``remove``
invalidates all cached queries of the entity class:

- adapters with pattern support delete ``cache:repository:{Entity}:*``
- adapters without it (the local fallback) get a bumped per-class
  version that is part of every key, so older entries are never read again
"""

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from perch.cache.adapter import CacheAdapter
from perch.config import AppConfig
from perch.data.entity import Entity
from perch.data.keys import QueryKind, RepositoryQueryKey
from perch.data.query_log import QueryLog, query_log
from perch.data.store import EntityStore

logger = logging.getLogger("perch.data")


class CachedRepository[E: Entity]:
    """Cached facade over an entity store for one entity class.

    Usage::

        products = CachedRepository(Product, MemoryEntityStore(Product), cache, config)
        lamp = products.find_one_by({"name": "lamp"})
        products.add(Product(name="desk", price=120.0))
    """

    __slots__ = ("_cache", "_config", "_log", "_store", "entity_cls")

    def __init__(
        self,
        entity_cls: type[E],
        store: EntityStore[E],
        cache: CacheAdapter,
        config: AppConfig | None = None,
        *,
        log: QueryLog | None = None,
    ) -> None:
        entity_cls.check_entity()
        self.entity_cls = entity_cls
        self._store = store
        self._cache = cache
        self._config = config or AppConfig()
        self._log = log or query_log

    @property
    def cache_enabled(self) -> bool:
        return self._config.cache_enabled

    @property
    def query_log(self) -> QueryLog:
        return self._log

    # -- Lookups --

    def find(self, id: Any) -> E | None:
        key = self._query("one", id=id)
        return self._one(key, lambda: self._store.find(id))

    def find_one_by(
        self, criteria: Mapping[str, Any], order_by: Mapping[str, str] | None = None
    ) -> E | None:
        key = self._query("oneBy", criteria=criteria, order_by=order_by)
        return self._one(key, lambda: self._store.find_one_by(criteria, order_by))

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[E]:
        key = self._query("allBy", criteria=criteria, order_by=order_by, limit=limit, offset=offset)
        return self._many(key, lambda: self._store.find_by(criteria, order_by, limit, offset))

    def find_all(self) -> list[E]:
        key = self._query("all")
        return self._many(key, self._store.find_all)

    # -- Mutations --

    def add(self, entity: E, flush: bool = True) -> None:
        """Persist *entity* and invalidate cached queries of its class."""
        self._store.persist(entity)
        if flush:
            self._store.flush()
        self.invalidate()

    def remove(self, entity: E, flush: bool = True) -> None:
        """Remove *entity* and invalidate cached queries of its class."""
        self._store.remove(entity)
        if flush:
            self._store.flush()
        self.invalidate()

    def invalidate(self) -> None:
        """Drop every cached query of this entity class."""
        if not self.cache_enabled:
            return
        if self._cache.supports_patterns:
            removed = self._cache.delete_by_key_pattern(f"{self._namespace()}:*")
            logger.debug("Invalidated %d cached %s queries", removed, self.entity_cls.entity_name())
            return
        version_key = self._version_key()
        version = int(self._cache.get(version_key, 0)) + 1
        self._cache.set(version_key, version)
        logger.debug("Bumped %s cache version to %d", self.entity_cls.entity_name(), version)

    # -- Internal --

    def _namespace(self) -> str:
        return f"cache:{RepositoryQueryKey.namespace(self.entity_cls.entity_name())}"

    def _version_key(self) -> str:
        return f"{self._namespace()}:version"

    def _query(self, kind: QueryKind, **shape: Any) -> RepositoryQueryKey:
        return RepositoryQueryKey(kind, self.entity_cls.entity_name(), **shape)

    def _cache_key(self, query: RepositoryQueryKey) -> str:
        if self._cache.supports_patterns:
            return f"cache:{query}"
        version = self._cache.get(self._version_key(), 0)
        return f"cache:{query}:v{version}"

    def _one(self, query: RepositoryQueryKey, fetch: Callable[[], E | None]) -> E | None:
        query_name = str(query)
        if not self.cache_enabled:
            self._log.record(query_name)
            return fetch()

        key = self._cache_key(query)
        cached = self._cache.get(key)
        if cached is not None:
            return self.entity_cls.from_params(json.loads(cached))

        entity = fetch()
        self._log.record(query_name)
        payload = entity.to_dict(force=True) if entity is not None else None
        self._cache.set(key, json.dumps(payload))
        return entity

    def _many(self, query: RepositoryQueryKey, fetch: Callable[[], list[E]]) -> list[E]:
        query_name = str(query)
        if not self.cache_enabled:
            self._log.record(query_name)
            return fetch()

        key = self._cache_key(query)
        cached = self._cache.get(key)
        if cached is not None:
            return self.entity_cls.from_params_list(json.loads(cached))

        entities = fetch()
        self._log.record(query_name)
        self._cache.set(key, json.dumps([e.to_dict(force=True) for e in entities]))
        return entities
