"""Deterministic cache keys for repository queries.

A key is derived from the query shape::

    repository:Product:one:42
    repository:Product:all
    repository:Product:oneBy:criteria:{"name":"lamp"}:orderBy:null
    repository:Product:allBy:criteria:{...}:orderBy:[["price","DESC"]]:limit:10:offset:0

The entity name comes right after ``repository:`` so that every key of
one entity class is covered by the pattern ``repository:Product:*``.

``criteria`` is encoded with sorted keys: ``{"a": 1, "b": 2}`` and
``{"b": 2, "a": 1}`` select the same rows and share one key; set values
are sorted for the same reason. Ids are JSON-encoded too, so ``42`` and
``"42"`` (different rows in the store) get different keys.
``order_by`` keeps its declared order since the first column takes
precedence over the second.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

type QueryKind = Literal["one", "all", "oneBy", "allBy"]


def _default(value: Any) -> Any:
    # Set iteration order varies with the hash seed of each process
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=_encode)
    return str(value)


def _encode(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_default)


def _encode_order_by(order_by: Mapping[str, str] | None) -> str:
    if order_by is None:
        return "null"
    return json.dumps(
        [[field, str(direction).upper()] for field, direction in order_by.items()],
        separators=(",", ":"),
    )


@dataclass(frozen=True, slots=True)
class RepositoryQueryKey:
    """The shape of one repository query."""

    kind: QueryKind
    entity: str
    id: Any = None
    criteria: Mapping[str, Any] | None = None
    order_by: Mapping[str, str] | None = None
    limit: int | None = None
    offset: int | None = None

    @staticmethod
    def namespace(entity: str) -> str:
        return f"repository:{entity}"

    def __str__(self) -> str:
        base = f"{self.namespace(self.entity)}:{self.kind}"
        match self.kind:
            case "one":
                return f"{base}:{_encode(self.id)}"
            case "all":
                return base
            case "oneBy":
                return (
                    f"{base}:criteria:{_encode(self.criteria or {})}"
                    f":orderBy:{_encode_order_by(self.order_by)}"
                )
            case _:
                return (
                    f"{base}:criteria:{_encode(self.criteria or {})}"
                    f":orderBy:{_encode_order_by(self.order_by)}"
                    f":limit:{_encode(self.limit)}:offset:{_encode(self.offset)}"
                )
