"""Perch — a small ASGI framework for server-rendered applications.

Explicit route registration, route-level middleware gates composed with
all/any/custom combinators, cached entity repositories, and pluggable
cache adapters (memory, Redis, local fallback).

Basic usage::

    from perch import App, AppConfig, route

    app = App(AppConfig(debug=True))

    @app.route("/users/{id}", "GET", name="user_show", middleware="auth")
    def show(id: int) -> dict:
        return {"id": id}
"""

__version__ = "0.1.0-dev"
__all__ = [
    "App",
    "AppConfig",
    "ConfigurationError",
    "Controller",
    "HTTPError",
    "MethodNotAllowed",
    "Middleware",
    "Next",
    "NotFound",
    "PerchError",
    "Redirect",
    "Request",
    "Response",
    "RouteMiddleware",
    "g",
    "get_current_route",
    "get_request",
    "route",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "App":
        from perch.app import App

        return App

    if name == "AppConfig":
        from perch.config import AppConfig

        return AppConfig

    if name == "Controller":
        from perch.controller import Controller

        return Controller

    if name == "route":
        from perch.routing.registry import route

        return route

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from perch.http import response as _resp

        return getattr(_resp, name)

    if name in ("Middleware", "Next"):
        from perch.middleware import protocol as _mw

        return getattr(_mw, name)

    if name == "RouteMiddleware":
        from perch.middleware.route import RouteMiddleware

        return RouteMiddleware

    if name in ("g", "get_request", "get_current_route"):
        from perch import context as _ctx

        return getattr(_ctx, name)

    if name in ("PerchError", "ConfigurationError", "HTTPError", "MethodNotAllowed", "NotFound"):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
