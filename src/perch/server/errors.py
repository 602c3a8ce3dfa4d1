"""Error handling pipeline for perch requests.

Maps HTTPError exceptions and unexpected failures to appropriate
Response objects, using registered error handlers or sensible defaults.
Requests under the API prefix get JSON bodies, everything else plain text.
"""

import inspect
import logging
import traceback
from collections.abc import Callable
from typing import Any

from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.server.negotiation import negotiate

logger = logging.getLogger("perch.server")


def _is_api_request(request: Request, api_prefix: str) -> bool:
    return request.path.startswith(api_prefix.rstrip("/") + "/")


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
) -> Response:
    """Invoke a user-registered error handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    Supports both sync and async error handlers.
    """
    sig = inspect.signature(handler)
    params = list(sig.parameters.values())

    if len(params) >= 2:
        result = handler(request, exc)
    elif len(params) == 1:
        result = handler(request)
    else:
        result = handler()

    if inspect.isawaitable(result):
        result = await result

    return negotiate(result)


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    *,
    debug: bool,
    api_prefix: str = "/api/",
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    # Try exact exception type, then status code
    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        # Keep the exception's status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"

    if _is_api_request(request, api_prefix):
        resp = Response.json({"error": detail}, status=exc.status)
    else:
        resp = Response(body=detail, content_type="text/plain; charset=utf-8").with_status(exc.status)
    for name, value in exc.headers:
        resp = resp.with_header(name, value)
    return resp


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    *,
    debug: bool,
    api_prefix: str = "/api/",
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    logger.exception("500 %s %s", request.method, request.path)

    handler = error_handlers.get(500) or error_handlers.get(type(exc))
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        if response.status == 200:
            response = response.with_status(500)
        return response

    detail = "Internal Server Error"
    if debug:
        detail = "".join(traceback.format_exception(exc))

    if _is_api_request(request, api_prefix):
        return Response.json({"error": detail}, status=500)
    return Response(body=detail, status=500, content_type="text/plain; charset=utf-8")
