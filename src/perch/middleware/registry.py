"""Named route middlewares.

Routes may reference middlewares by a stable string identifier
(``middleware="auth"``). The registry maps those identifiers to
``RouteMiddleware`` classes; an App owns one, pre-filled with the
built-in gates.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from perch.errors import ConfigurationError, RouteMiddlewareError
from perch.middleware.route import RouteMiddleware


class MiddlewareRegistry:
    """Identifier → ``RouteMiddleware`` class mapping.

    Usage::

        registry = MiddlewareRegistry.with_defaults()
        registry.register("admin", Administrator)
        registry.resolve("admin")  # -> Administrator
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[str, type[RouteMiddleware]] | None = None) -> None:
        self._entries: dict[str, type[RouteMiddleware]] = {}
        for name, middleware in (entries or {}).items():
            self.register(name, middleware)

    @classmethod
    def with_defaults(cls) -> MiddlewareRegistry:
        """A registry holding the built-in gates: ``auth`` and ``api``."""
        from perch.middleware.gates import ApiClient, Authenticated

        return cls({"auth": Authenticated, "api": ApiClient})

    def register(self, name: str, middleware: type[RouteMiddleware]) -> None:
        """Register *middleware* under *name*.

        Re-registering the same class is a no-op; binding a taken name to
        another class raises ``ConfigurationError``.
        """
        if not isinstance(name, str) or not name or ":" in name:
            msg = f"Middleware name must be a non-empty string without ':', got {name!r}"
            raise ConfigurationError(msg)
        if not (isinstance(middleware, type) and issubclass(middleware, RouteMiddleware)):
            msg = f"Middleware {name!r} must be a RouteMiddleware subclass, got {middleware!r}"
            raise ConfigurationError(msg)
        existing = self._entries.get(name)
        if existing is not None and existing is not middleware:
            msg = (
                f"Middleware name {name!r} is already registered to "
                f"{existing.__qualname__}"
            )
            raise ConfigurationError(msg)
        self._entries[name] = middleware

    def resolve(self, name: str) -> type[RouteMiddleware]:
        try:
            return self._entries[name]
        except KeyError:
            msg = f"Unknown middleware {name!r}"
            raise RouteMiddlewareError(msg) from None

    def copy(self) -> MiddlewareRegistry:
        return MiddlewareRegistry(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
