"""Cached entity repositories.

Entities are dataclasses with an ``id``. A ``CachedRepository`` wraps an
``EntityStore`` with a read-through cache and invalidates cached queries
of an entity class on every write::

    from dataclasses import dataclass

    from perch.cache import MemoryCacheAdapter
    from perch.data import CachedRepository, Entity, MemoryEntityStore

    @dataclass(slots=True)
    class User(Entity):
        email: str
        id: int | None = None

    users = CachedRepository(User, MemoryEntityStore(User), MemoryCacheAdapter())
    users.add(User(email="ada@example.com"))
    users.find(1)
"""

from perch.data.entity import Entity
from perch.data.errors import DataError, EntityConfigurationError, EntityNotManagedError
from perch.data.keys import RepositoryQueryKey
from perch.data.query_log import QueryLog, query_log
from perch.data.repository import CachedRepository
from perch.data.store import EntityStore, MemoryEntityStore

__all__ = [
    "CachedRepository",
    "DataError",
    "Entity",
    "EntityConfigurationError",
    "EntityNotManagedError",
    "EntityStore",
    "MemoryEntityStore",
    "QueryLog",
    "RepositoryQueryKey",
    "query_log",
]
