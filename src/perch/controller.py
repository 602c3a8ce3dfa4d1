"""Controller base class.

Controllers group related route handlers. One instance is created per
request; ``@route`` methods are then called on it with their path
parameters::

    class ProductController(Controller):
        @route("/product/{id}", "GET", name="product_show")
        def show(self, id: int) -> dict:
            return {"id": id, "path": self.request.path}

        @route("/product/{id}", "DELETE", name="product_delete", middleware="auth")
        def delete(self, id: int) -> Redirect:
            ...
            return self.redirect_to("product_list")

Plain classes work too: they are instantiated without arguments.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from perch.http.request import Request
from perch.http.response import Redirect, Response
from perch.middleware.sessions import get_session

if TYPE_CHECKING:
    from perch.routing.router import Router


class Controller:
    """Per-request base for controller classes."""

    __slots__ = ("_router", "request")

    def __init__(self, request: Request, router: Router | None = None) -> None:
        self.request = request
        self._router = router

    @property
    def session(self) -> dict[str, Any]:
        """The signed-cookie session. Requires ``SessionMiddleware``."""
        return get_session()

    def url_for(self, name: str, **params: Any) -> str:
        """URL of route *name*; ``"#name"`` when no such route exists."""
        if self._router is None:
            return f"#{name}"
        return self._router.get_route_link(name, params)

    def redirect_to(self, name: str, **params: Any) -> Redirect:
        return Redirect(self.url_for(name, **params))

    def redirect_back(self, fallback: str = "/") -> Redirect:
        """Redirect to the referring page, or *fallback* without a Referer."""
        return Redirect(self.request.referer or fallback)

    def json(self, data: Any, status: int = 200) -> Response:
        return Response.json(data, status=status)
