"""Entity store protocol and an in-memory implementation.

``CachedRepository`` talks to the source of truth through ``EntityStore``:
lookups (``find``, ``find_one_by``, ``find_by``, ``find_all``) and a
unit of work (``persist``/``remove`` staged, applied by ``flush``).
Any ORM session or hand-written gateway with this shape can be plugged in.

``MemoryEntityStore`` keeps rows in a dict and hands out copies, the way
a database hands out fresh rows. It backs tests and local development.
"""

import dataclasses
import threading
from collections.abc import Mapping
from typing import Any, Protocol

from perch.data.errors import EntityNotManagedError


class EntityStore[E](Protocol):
    """Persistence capability consumed by ``CachedRepository``."""

    def find(self, id: Any) -> E | None: ...

    def find_one_by(
        self, criteria: Mapping[str, Any], order_by: Mapping[str, str] | None = None
    ) -> E | None: ...

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[E]: ...

    def find_all(self) -> list[E]: ...

    def persist(self, entity: E) -> None: ...

    def remove(self, entity: E) -> None: ...

    def flush(self) -> None: ...


class MemoryEntityStore[E]:
    """Dict-backed ``EntityStore`` for one entity class.

    New entities (``id is None``) get sequential integer ids on ``flush()``.
    ``order_by`` maps field names to ``"ASC"`` or ``"DESC"``.
    """

    __slots__ = ("_lock", "_next_id", "_pending", "_rows", "entity_cls")

    def __init__(self, entity_cls: type[E]) -> None:
        self.entity_cls = entity_cls
        self._rows: dict[Any, E] = {}
        self._pending: list[tuple[str, E]] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rows)

    # -- Lookups --

    def find(self, id: Any) -> E | None:
        row = self._rows.get(id)
        return dataclasses.replace(row) if row is not None else None

    def find_one_by(
        self, criteria: Mapping[str, Any], order_by: Mapping[str, str] | None = None
    ) -> E | None:
        rows = self.find_by(criteria, order_by, limit=1)
        return rows[0] if rows else None

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[E]:
        rows = [r for r in self._rows.values() if _matches(r, criteria)]
        # Stable sorts applied last-key-first give multi-column ordering
        for field, direction in reversed(list((order_by or {}).items())):
            rows.sort(key=lambda r, f=field: getattr(r, f), reverse=direction.upper() == "DESC")
        start = offset or 0
        end = start + limit if limit is not None else None
        return [dataclasses.replace(r) for r in rows[start:end]]

    def find_all(self) -> list[E]:
        return [dataclasses.replace(r) for r in self._rows.values()]

    # -- Unit of work --

    def persist(self, entity: E) -> None:
        self._pending.append(("persist", entity))

    def remove(self, entity: E) -> None:
        self._pending.append(("remove", entity))

    def flush(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, []
            for op, entity in pending:
                if op == "persist":
                    if entity.id is None:
                        entity.id = self._next_id
                    self._next_id = max(self._next_id, _as_int(entity.id) + 1)
                    self._rows[entity.id] = dataclasses.replace(entity)
                else:
                    if entity.id not in self._rows:
                        msg = f"{type(entity).__name__} with id {entity.id!r} is not stored"
                        raise EntityNotManagedError(msg)
                    del self._rows[entity.id]


def _matches(row: Any, criteria: Mapping[str, Any]) -> bool:
    for field, expected in criteria.items():
        actual = getattr(row, field)
        if isinstance(expected, list | tuple | set | frozenset):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) else 0
