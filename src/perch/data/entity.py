"""Entity base for cached repositories.

Entities are plain dataclasses with an ``id`` field. The ``Entity`` mixin
adds the two conversions the cache needs: a full field dump for storing
and reconstruction with type coercion for loading::

    @dataclass(slots=True)
    class Product(Entity):
        name: str
        price: float
        id: int | None = None

Related entities are stored by id. ``datetime`` and ``date`` values are
stored as ISO 8601 strings.
"""

import dataclasses
from datetime import date, datetime
from typing import Any, Self

from perch.data._mapping import map_row, map_rows
from perch.data.errors import EntityConfigurationError


class Entity:
    """Mixin for dataclass entities stored through a ``CachedRepository``."""

    __slots__ = ()

    id: Any

    @classmethod
    def entity_name(cls) -> str:
        """Short class name used in cache keys (``"Product"``)."""
        return cls.__name__

    def to_dict(self, force: bool = True) -> dict[str, Any]:
        """Serialize to a JSON-ready dict.

        With ``force=True`` every field is dumped. With ``force=False``
        only the reference (``{"id": ...}``) is returned.
        """
        if not force:
            return {"id": self.id}
        return {f.name: _dump(getattr(self, f.name)) for f in dataclasses.fields(self)}

    @classmethod
    def from_params(cls, data: dict[str, Any] | None) -> Self | None:
        """Rebuild an entity from a dict produced by ``to_dict()``."""
        if data is None:
            return None
        return map_row(cls, data)

    @classmethod
    def from_params_list(cls, rows: list[dict[str, Any]]) -> list[Self]:
        return map_rows(cls, rows)

    @classmethod
    def check_entity(cls) -> None:
        """Raise ``EntityConfigurationError`` unless the class is a mappable dataclass."""
        if not dataclasses.is_dataclass(cls):
            msg = f"{cls.__name__} must be a dataclass to be used as an entity"
            raise EntityConfigurationError(msg)
        if "id" not in {f.name for f in dataclasses.fields(cls)}:
            msg = f"{cls.__name__} must declare an 'id' field"
            raise EntityConfigurationError(msg)


def _dump(value: Any) -> Any:
    match value:
        case Entity():
            return value.id
        case datetime() | date():
            return value.isoformat()
        case list() | tuple():
            return [_dump(v) for v in value]
        case dict():
            return {k: _dump(v) for k, v in value.items()}
        case _:
            return value
