"""ASGI handler — translates ASGI scope/messages to perch types.

The only component that touches raw ASGI directly. Converts scope dicts
to typed Request objects, dispatches through app middleware, routing and
route middleware, and sends the Response back through ASGI send().
"""

import inspect
from collections.abc import Callable
from contextvars import Token
from dataclasses import replace
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.config import AppConfig
from perch.context import g, request_var, route_var
from perch.controller import Controller
from perch.errors import HTTPError, MethodNotAllowed, NotFound
from perch.http.request import Request
from perch.http.response import Response
from perch.middleware.executor import evaluate
from perch.middleware.protocol import Next
from perch.middleware.route import PROCEED, MiddlewareContext
from perch.routing.route import MatchedRoute
from perch.routing.router import Router
from perch.server.errors import handle_http_error, handle_internal_error
from perch.server.negotiation import negotiate
from perch.server.sender import send_response


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    middleware: tuple[Callable[..., Any], ...],
    error_handlers: dict[int | type, Callable[..., Any]],
    config: AppConfig,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    # Build Request from ASGI scope
    request = Request.from_asgi(scope, receive)

    # Set request context var (reset after dispatch)
    token: Token[Request] = request_var.set(request)
    route_token: Token[MatchedRoute] | None = None

    try:
        # Innermost handler: match, gate, call
        async def dispatch(req: Request) -> Response:
            nonlocal route_token

            matched = router.match(req.method, req.path)
            if matched is None:
                allowed = router.allowed_methods(req.path)
                if allowed:
                    raise MethodNotAllowed(allowed)
                raise NotFound()

            route_token = route_var.set(matched)
            req = replace(req, path_params=matched.raw_params)
            request_var.set(req)

            outcome = await evaluate(
                matched.route.middleware,
                MiddlewareContext(request=req, route=matched, config=config),
            )
            if outcome is not PROCEED:
                return negotiate(outcome)

            return await _invoke_handler(matched, req, router)

        # Wrap middleware around the dispatch
        handler = dispatch
        for mw in reversed(middleware):
            outer = handler
            mw_ref = mw

            async def make_next(req: Request, _mw: Any = mw_ref, _next: Next = outer) -> Response:
                return await _mw(req, _next)

            handler = make_next

        # Execute the full pipeline
        response = await handler(request)

    except HTTPError as exc:
        response = await handle_http_error(
            exc, request, error_handlers, debug=config.debug, api_prefix=config.api_prefix
        )
    except Exception as exc:
        response = await handle_internal_error(
            exc, request, error_handlers, debug=config.debug, api_prefix=config.api_prefix
        )
    finally:
        if route_token is not None:
            route_var.reset(route_token)
        g._reset()
        request_var.reset(token)

    await send_response(response, send)


async def _invoke_handler(matched: MatchedRoute, request: Request, router: Router) -> Response:
    """Call the matched route handler with coerced path params."""
    route = matched.route
    handler: Callable[..., Any] = route.handler

    # Controllers are instantiated per request and the method bound to them
    if route.controller is not None:
        if issubclass(route.controller, Controller):
            instance = route.controller(request, router)
        else:
            instance = route.controller()
        handler = handler.__get__(instance, route.controller)

    kwargs = _build_handler_kwargs(handler, request, matched.params)

    # Call the handler (sync or async, invoke() handles both)
    result = await invoke(handler, **kwargs)

    return negotiate(result)


def _build_handler_kwargs(
    handler: Callable[..., Any],
    request: Request,
    path_params: dict[str, str | int | float],
) -> dict[str, Any]:
    """Inspect handler signature and build kwargs from request + path params.

    Resolution order:
    1. ``request`` parameter (by name or ``Request`` annotation)
    2. Path parameters (by name, already coerced by the router)
    """
    sig = inspect.signature(handler, eval_str=True)
    kwargs: dict[str, Any] = {}

    for name, param in sig.parameters.items():
        if name == "request" or param.annotation is Request:
            kwargs[name] = request
        elif name in path_params:
            kwargs[name] = path_params[name]

    return kwargs
