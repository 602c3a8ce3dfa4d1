"""Dict-to-dataclass mapping with type coercion.

Rebuilds entity dataclasses from cached JSON payloads. Uses dataclass
field introspection — no metaclass magic, no descriptors.

Type coercion handles the mismatch between JSON (which has no dates and
returns strings for anything exotic) and dataclass annotations. Fields
annotated as ``int`` coerce ``"45"`` to ``45`` and empty strings to ``0``;
``datetime`` and ``date`` fields parse ISO 8601 strings.
"""

import dataclasses
import types
from datetime import date, datetime
from typing import Any, get_args, get_origin, get_type_hints

from perch.data.errors import EntityConfigurationError

# Scalar types we know how to coerce from serialized values.
_COERCIBLE: dict[type, Any] = {
    int: lambda v: int(v) if v != "" else 0,
    float: lambda v: float(v) if v != "" else 0.0,
    bool: lambda v: bool(int(v)) if isinstance(v, str) else bool(v),
    str: str,
    datetime: datetime.fromisoformat,
    date: date.fromisoformat,
}


def _build_coercion_map(cls: type) -> dict[str, type | None]:
    """Build a {field_name: target_type} map for coercible fields.

    Returns ``None`` for fields that don't need coercion (complex types,
    generics, etc.).
    """
    hints = get_type_hints(cls)
    result: dict[str, type | None] = {}
    for f in dataclasses.fields(cls):
        annotation = hints.get(f.name, f.type)
        # Unwrap Optional (X | None): coerce to the non-None branch
        origin = get_origin(annotation)
        if origin is types.UnionType:
            args = [a for a in get_args(annotation) if a is not type(None)]
            annotation = args[0] if len(args) == 1 else None
        result[f.name] = annotation if annotation in _COERCIBLE else None
    return result


def _coerce(value: Any, target: type | None) -> Any:
    """Coerce a single value to the target type, if needed."""
    if target is None or value is None:
        return value
    # bool is an int subclass; keep datetime out of the date shortcut
    if isinstance(value, target) and not (target is date and isinstance(value, datetime)):
        return value
    return _COERCIBLE[target](value)


def map_row[T](cls: type[T], row: dict[str, Any]) -> T:
    """Map a dict to a dataclass instance.

    Only passes keys that match dataclass fields. Extra keys are silently
    ignored, so payloads written by an older version of the class still load.

    Raises ``TypeError`` if required fields are missing from the row.
    """
    if not dataclasses.is_dataclass(cls):
        msg = f"{cls.__name__} is not a dataclass; perch.data entities must be dataclasses"
        raise EntityConfigurationError(msg)

    coercion = _build_coercion_map(cls)
    filtered = {
        k: _coerce(v, coercion.get(k))
        for k, v in row.items()
        if k in coercion
    }
    return cls(**filtered)


def map_rows[T](cls: type[T], rows: list[dict[str, Any]]) -> list[T]:
    """Map a list of dicts to dataclass instances."""
    if not dataclasses.is_dataclass(cls):
        msg = f"{cls.__name__} is not a dataclass; perch.data entities must be dataclasses"
        raise EntityConfigurationError(msg)

    coercion = _build_coercion_map(cls)
    field_names = set(coercion)
    return [
        cls(**{k: _coerce(v, coercion.get(k)) for k, v in row.items() if k in field_names})
        for row in rows
    ]
