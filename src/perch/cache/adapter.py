"""Cache adapter base class.

Every adapter shares the same surface: ``get``, ``set``, ``delete``,
``delete_by_key_pattern``, ``clear``, ``has`` plus the batch variants.
The base class owns argument validation and key namespacing; concrete
adapters implement the ``_``-prefixed storage hooks on fully prefixed keys.

Key patterns support a single ``*`` wildcard at the start and/or end::

    "user:*"     -> keys starting with "user:"
    "*:profile"  -> keys ending with ":profile"
    "*session*"  -> keys containing "session"
    "*"          -> every key in the namespace

A ``*`` anywhere else (``"a*b"``) is rejected with ``CacheKeyError``.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any

from perch.cache.errors import CacheKeyError, CacheValueError

type Scalar = str | int | float | bool
type TTL = int | float | timedelta | None

_PATTERN_CHARS = re.compile(r"^[A-Za-z0-9_:.\-*]+$")


def validate_key(key: object) -> str:
    """Return *key* if it is a non-empty string, else raise ``CacheKeyError``."""
    if not isinstance(key, str):
        raise CacheKeyError()
    if not key:
        msg = "Keys must be non-empty strings!"
        raise CacheKeyError(msg)
    return key


def validate_value(value: object) -> Scalar:
    """Return *value* if it is a scalar, else raise ``CacheValueError``."""
    if not isinstance(value, str | int | float | bool):
        raise CacheValueError()
    return value


def validate_pattern(pattern: object) -> str:
    """Validate a key pattern for ``delete_by_key_pattern``."""
    key = validate_key(pattern)
    if not _PATTERN_CHARS.match(key):
        msg = (
            f'The key pattern "{key}" contains invalid characters. Only letters, digits, '
            f'"_", ":", ".", "-" and "*" are allowed.'
        )
        raise CacheKeyError(msg)
    if "*" in key.strip("*") or key.count("*") > 2:
        msg = (
            f'The key pattern "{key}" is not valid. The "*" character must be at the '
            f"beginning or at the end of the pattern, not in the middle."
        )
        raise CacheKeyError(msg)
    return key


def matches_pattern(pattern: str, key: str) -> bool:
    """Whether *key* matches a validated *pattern*."""
    body = pattern.strip("*")
    if not body:
        return True
    leading = pattern.startswith("*")
    trailing = pattern.endswith("*")
    if leading and trailing:
        return body in key
    if leading:
        return key.endswith(body)
    if trailing:
        return key.startswith(body)
    return key == body


def ttl_seconds(ttl: TTL) -> float | None:
    """Normalize a TTL to seconds. ``None`` means no expiry."""
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    if isinstance(ttl, bool) or not isinstance(ttl, int | float):
        msg = f"TTL must be seconds or a timedelta, got {type(ttl).__name__}"
        raise CacheValueError(msg)
    return float(ttl)


class CacheAdapter:
    """Base class for cache adapters.

    Subclasses implement ``_get``, ``_set``, ``_delete``, ``_has``,
    ``_clear`` and, where supported, ``_delete_pattern``.
    """

    supports_patterns: bool = True

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # -- Storage hooks --

    def _get(self, key: str, default: Any) -> Any:
        raise NotImplementedError

    def _set(self, key: str, value: Scalar, ttl: float | None) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def _has(self, key: str) -> bool:
        raise NotImplementedError

    def _clear(self) -> None:
        raise NotImplementedError

    def _delete_pattern(self, pattern: str) -> int:
        """Delete keys whose unprefixed form matches the validated *pattern*."""
        raise NotImplementedError

    # -- Public API --

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for *key*, or *default* on a miss."""
        return self._get(self._key(validate_key(key)), default)

    def set(self, key: str, value: Scalar, ttl: TTL = None) -> bool:
        """Store a scalar *value*. ``ttl`` is seconds or a ``timedelta``."""
        full_key = self._key(validate_key(key))
        self._set(full_key, validate_value(value), ttl_seconds(ttl))
        return True

    def delete(self, key: str) -> bool:
        self._delete(self._key(validate_key(key)))
        return True

    def has(self, key: str) -> bool:
        return self._has(self._key(validate_key(key)))

    def clear(self) -> bool:
        """Remove every key in this adapter's namespace."""
        self._clear()
        return True

    def delete_by_key_pattern(self, pattern: str) -> int:
        """Delete keys matching *pattern* and return how many were removed."""
        return self._delete_pattern(validate_pattern(pattern))

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        keys = key_list(keys)
        return {key: self.get(key, default) for key in keys}

    def set_multiple(self, values: Mapping[str, Scalar], ttl: TTL = None) -> bool:
        if not isinstance(values, Mapping):
            msg = "Values must be a mapping of keys to scalars!"
            raise CacheValueError(msg)
        for key, value in values.items():
            validate_key(key)
            validate_value(value)
        for key, value in values.items():
            self.set(key, value, ttl)
        return True

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        keys = key_list(keys)
        for key in keys:
            self.delete(key)
        return True


def key_list(keys: object) -> list[str]:
    """Validate an iterable of keys and return it as a list."""
    if isinstance(keys, str) or not isinstance(keys, Iterable):
        msg = "Keys must be an iterable of strings!"
        raise CacheKeyError(msg)
    return [validate_key(k) for k in keys]
