"""Route middleware — gates evaluated before a matched handler runs.

A route middleware subclasses ``RouteMiddleware`` and implements
``result()``, sync or async::

    class Administrator(RouteMiddleware):
        def result(self) -> bool | AnyResponse:
            return get_session().get("role") == "admin"

``result()`` answers ``True`` to let the request through, ``False`` to
deny it with the default access-denied response, or a ``Response`` /
``Redirect`` to end the request with that response instead.
``execute()`` normalizes the answer into ``PROCEED`` or a terminal response.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from perch._internal.invoke import invoke
from perch.config import AppConfig
from perch.http.request import Request
from perch.http.response import AnyResponse, Redirect, Response
from perch.middleware.sessions import flash

if TYPE_CHECKING:
    from perch.routing.route import MatchedRoute

logger = logging.getLogger("perch.middleware")

ACCESS_DENIED_MESSAGE: Final = "Access Denied!"


class Proceed:
    """Marker outcome: the gate passed and dispatch continues."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "PROCEED"


PROCEED: Final = Proceed()

type MiddlewareOutcome = Proceed | AnyResponse


@dataclass(frozen=True, slots=True)
class MiddlewareContext:
    """Everything a route middleware may look at: the request, the route it
    matched, and the application config."""

    request: Request
    route: MatchedRoute
    config: AppConfig

    @property
    def is_api(self) -> bool:
        """Whether the matched route lives under ``config.api_prefix``."""
        return self.route.url.startswith(self.config.api_prefix.rstrip("/") + "/")


class RouteMiddleware:
    """Base class for route middleware.

    One instance is created per evaluation; combinators only construct a
    middleware when they actually need its answer.
    """

    __slots__ = ("context",)

    def __init__(self, context: MiddlewareContext) -> None:
        self.context = context

    @property
    def request(self) -> Request:
        return self.context.request

    @property
    def config(self) -> AppConfig:
        return self.context.config

    def result(self) -> bool | AnyResponse:
        raise NotImplementedError

    async def execute(self) -> MiddlewareOutcome:
        """Run ``result()`` and normalize its answer."""
        answer = await invoke(self.result)
        if answer is True:
            return PROCEED
        if answer is False:
            logger.debug(
                "%s denied %s %s",
                type(self).__name__,
                self.request.method,
                self.request.path,
            )
            return self.access_denied()
        if isinstance(answer, (Response, Redirect)):
            return answer
        msg = (
            f"{type(self).__name__}.result() must return a bool, Response or "
            f"Redirect, got {type(answer).__name__}"
        )
        raise TypeError(msg)

    def access_denied(self) -> AnyResponse:
        """The response for a ``False`` answer.

        API routes get ``403 {"error": "access_denied"}``. Other routes are
        redirected back to the referring page (or ``config.access_denied_url``),
        with ``"Access Denied!"`` flashed into the session's ``errors`` list
        when a session is active.
        """
        if self.context.is_api:
            return Response.json({"error": "access_denied"}, status=403)

        with contextlib.suppress(LookupError):
            flash(ACCESS_DENIED_MESSAGE)
        return Redirect(self.request.referer or self.config.access_denied_url)
