"""Immutable, case-insensitive HTTP headers.

Built once from the raw ASGI byte pairs. Names are lower-cased and
values decoded as latin-1 at construction, so lookups are dict hits.
"""

from collections.abc import Iterator, Mapping


class Headers(Mapping[str, str]):
    """Read-only header mapping.

    ``headers["Referer"]`` returns the first value for the name;
    ``get_list`` returns every value (e.g. repeated ``Cookie`` headers).
    """

    __slots__ = ("_index", "_raw")

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        index: dict[str, list[str]] = {}
        for name, value in raw:
            index.setdefault(name.decode("latin-1").lower(), []).append(value.decode("latin-1"))
        self._raw = raw
        self._index = index

    def __getitem__(self, key: str) -> str:
        values = self._index.get(key.lower())
        if not values:
            raise KeyError(key)
        return values[0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"Headers({ {k: v[0] for k, v in self._index.items()}!r})"

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return list(self._index.get(key.lower(), ()))

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Raw header byte pairs as received from the ASGI scope."""
        return self._raw
