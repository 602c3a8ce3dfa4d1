"""Request-scoped context via ContextVar.

Provides:
- ``request_var``: The current ``Request`` for this task/thread.
- ``route_var``: The ``MatchedRoute`` the current request resolved to.
- ``g``: A mutable namespace scoped to the current request.

All three are set by the handler pipeline and reset after each request.
Accessing the request or route outside a request raises ``LookupError``.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from perch.http.request import Request

if TYPE_CHECKING:
    from perch.routing.route import MatchedRoute

# -- Request context --

request_var: ContextVar[Request] = ContextVar("perch_request")
"""The current request. Set by the ASGI handler before dispatch."""

route_var: ContextVar[MatchedRoute] = ContextVar("perch_route")
"""The matched route. Set by the ASGI handler after a successful match."""


def get_request() -> Request:
    """Return the current request.

    Raises ``LookupError`` if called outside a request context.
    """
    return request_var.get()


def get_current_route() -> MatchedRoute:
    """Return the route the current request matched.

    Raises ``LookupError`` outside a request, or before routing has happened.
    """
    return route_var.get()


# -- Request-scoped namespace --


class _RequestGlobals:
    """A mutable namespace scoped to the current request.

    Stores arbitrary attributes via a per-request dict held in a ContextVar.

    Usage::

        from perch.context import g

        # In a route middleware
        g.user_id = session["user_id"]

        # In the handler
        user = users.find(g.user_id)
    """

    __slots__ = ("_store",)

    def __init__(self) -> None:
        object.__setattr__(self, "_store", ContextVar("perch_g", default=None))

    def _get_dict(self) -> dict[str, Any]:
        store: ContextVar[dict[str, Any] | None] = object.__getattribute__(self, "_store")
        d = store.get()
        if d is None:
            d = {}
            store.set(d)
        return d

    def _reset(self) -> None:
        object.__getattribute__(self, "_store").set(None)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._get_dict()[name]
        except KeyError:
            msg = f"'g' has no attribute {name!r} in the current request scope"
            raise AttributeError(msg) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._get_dict()[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._get_dict()[name]
        except KeyError:
            msg = f"'g' has no attribute {name!r} in the current request scope"
            raise AttributeError(msg) from None

    def __contains__(self, name: str) -> bool:
        return name in self._get_dict()

    def get(self, name: str, default: Any = None) -> Any:
        return self._get_dict().get(name, default)

    def __repr__(self) -> str:
        return f"<g {self._get_dict()!r}>"


g = _RequestGlobals()
"""Request-scoped namespace. Stores arbitrary per-request data."""
