"""Middleware — app-level callables and route-level gates.

App-level middleware is any callable matching:
    async def mw(request: Request, next: Next) -> Response

Route middleware subclasses ``RouteMiddleware`` and is attached to
individual routes, composed with ``MatchAll`` / ``MatchAny`` /
``MatchCustom``.

Built-in middleware:
    SessionMiddleware -- Signed cookie sessions (itsdangerous)
    Authenticated -- Route gate: session user required ("auth")
    ApiClient -- Route gate: client host allow-list ("api")
"""

from perch.middleware.combinators import (
    MatchAll,
    MatchAny,
    MatchCustom,
    MiddlewareNode,
    Single,
    parse_middleware,
)
from perch.middleware.executor import evaluate, execute_middleware
from perch.middleware.gates import ApiClient, Authenticated
from perch.middleware.protocol import Middleware, Next
from perch.middleware.registry import MiddlewareRegistry
from perch.middleware.route import PROCEED, MiddlewareContext, Proceed, RouteMiddleware
from perch.middleware.sessions import (
    SessionConfig,
    SessionMiddleware,
    flash,
    get_session,
    pop_flashed,
    regenerate_session,
)

__all__ = [
    "PROCEED",
    "ApiClient",
    "Authenticated",
    "MatchAll",
    "MatchAny",
    "MatchCustom",
    "Middleware",
    "MiddlewareContext",
    "MiddlewareNode",
    "MiddlewareRegistry",
    "Next",
    "Proceed",
    "RouteMiddleware",
    "SessionConfig",
    "SessionMiddleware",
    "Single",
    "evaluate",
    "execute_middleware",
    "flash",
    "get_session",
    "parse_middleware",
    "pop_flashed",
    "regenerate_session",
]
