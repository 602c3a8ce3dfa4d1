"""Perch exception hierarchy.

Shared across the route table, router, middleware engine, and handler
so every module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when app or route configuration is invalid.

    Typically raised while building the route table in ``App._freeze()``,
    which aborts startup. A misconfigured route never partially registers.
    """


class InvalidHttpMethodError(ConfigurationError):
    """A route declares an HTTP method outside GET/POST/PUT/PATCH/DELETE."""


class InvalidRouteMethodParameterTypeError(ConfigurationError):
    """A route handler parameter is a union or not one of ``str``/``int``/``float``."""

    def __init__(self, type_name: str, parameter: str, route_name: str, handler_ref: str) -> None:
        self.type_name = type_name
        self.parameter = parameter
        msg = (
            f"Invalid type {type_name!r} of parameter {parameter!r} in route "
            f"{route_name!r} ({handler_ref}). Route parameters must be annotated "
            f"as str, int, or float."
        )
        super().__init__(msg)


class RouteParameterExpectedError(ConfigurationError):
    """A URL placeholder has no matching handler parameter."""


class DuplicateRouteError(ConfigurationError):
    """Two routes share a name or an ``(http_method, url)`` pair."""


class RouteMiddlewareError(ConfigurationError):
    """A route middleware declaration is malformed, or a middleware raised.

    When wrapping an exception raised inside a middleware's own logic,
    the original exception is available as ``__cause__``.
    """


class RouteNotFoundError(PerchError, LookupError):
    """No route is registered under the requested name."""


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """405 — route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )


class RouteParameterError(HTTPError):
    """400 — a path segment could not be converted to the declared type.

    Per-request and recoverable: the dispatcher turns it into a
    400 response instead of failing the process.
    """

    def __init__(self, name: str, value: str, type_name: str) -> None:
        super().__init__(
            status=400,
            detail=f"Route parameter {name!r} expects {type_name}, got {value!r}",
        )
