"""Built-in route middlewares.

``Authenticated`` (registered as ``"auth"``) requires a logged-in
session user. ``ApiClient`` (registered as ``"api"``) restricts a route
to the hosts in ``AppConfig.api_hosts``.
"""

from typing import Any, Final

from perch.context import g
from perch.http.response import AnyResponse, Redirect, Response
from perch.middleware.route import RouteMiddleware
from perch.middleware.sessions import get_session, regenerate_session

SESSION_USER_KEY: Final = "session_user_id"


def log_in(user_id: Any) -> None:
    """Start an authenticated session for *user_id*.

    The previous session contents are discarded first.
    Raises ``LookupError`` without an active session.
    """
    session = regenerate_session()
    session[SESSION_USER_KEY] = user_id


def log_out() -> None:
    """End the authenticated session. Raises ``LookupError`` without one."""
    regenerate_session()


def current_user_id() -> Any:
    """The logged-in user's id, or ``None``."""
    try:
        return get_session().get(SESSION_USER_KEY)
    except LookupError:
        return None


class Authenticated(RouteMiddleware):
    """Pass when the session carries a user id.

    On success the id is exposed as ``g.user_id``. Otherwise API routes
    answer ``401 {"error": "Unauthorized!"}`` and pages redirect to
    ``AppConfig.login_url``.
    """

    __slots__ = ()

    def result(self) -> bool | AnyResponse:
        user_id = current_user_id()
        if user_id is not None:
            g.user_id = user_id
            return True
        if self.context.is_api:
            return Response.json({"error": "Unauthorized!"}, status=401)
        return Redirect(self.config.login_url)


class ApiClient(RouteMiddleware):
    """Pass when the peer address is one of ``AppConfig.api_hosts``."""

    __slots__ = ()

    def result(self) -> bool | AnyResponse:
        if self.request.client_host in self.config.api_hosts:
            return True
        return Response.json({"error": "access_denied"}, status=403)
