"""Signed cookie sessions.

The session is a JSON-serializable dict, signed with ``itsdangerous``
and carried in a single cookie. ``SessionMiddleware`` loads it before
dispatch and re-signs it onto every response; in between, handlers and
route middlewares reach it through ``get_session()``.

Flash messages are lists stored under a session key (``"errors"`` by
default) and consumed on the next read with ``pop_flashed()``.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadData, URLSafeTimedSerializer

from perch.errors import ConfigurationError
from perch.http.request import Request
from perch.http.response import Response
from perch.middleware.protocol import Next

_session_var: ContextVar[dict[str, Any] | None] = ContextVar("perch_session", default=None)


def get_session() -> dict[str, Any]:
    """The session of the current request.

    Raises ``LookupError`` outside a request served through ``SessionMiddleware``.
    """
    session = _session_var.get()
    if session is None:
        msg = "No active session. Add SessionMiddleware to the app before using the session."
        raise LookupError(msg)
    return session


def regenerate_session() -> dict[str, Any]:
    """Empty the session in place and return it.

    The response then carries a freshly signed cookie, so nothing from
    the previous session survives a login or logout.
    """
    session = get_session()
    session.clear()
    return session


def flash(message: str, key: str = "errors") -> None:
    """Append *message* to the flash list under *key*."""
    get_session().setdefault(key, []).append(message)


def pop_flashed(key: str = "errors") -> list[str]:
    """Remove and return the flash list under *key* (empty without a session)."""
    try:
        return get_session().pop(key, [])
    except LookupError:
        return []


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Cookie settings for ``SessionMiddleware``.

    ``secret_key`` signs the cookie; the contents are readable by the client.
    """

    secret_key: str
    cookie_name: str = "perch_session"
    max_age: int = 86400
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"


class SessionMiddleware:
    """App-level middleware providing ``get_session()``.

    Usage::

        app.add_middleware(SessionMiddleware(SessionConfig(secret_key=settings.secret)))
    """

    __slots__ = ("_config", "_serializer")

    def __init__(self, config: SessionConfig) -> None:
        if not config.secret_key:
            msg = "SessionConfig.secret_key must not be empty."
            raise ConfigurationError(msg)
        self._config = config
        self._serializer = URLSafeTimedSerializer(config.secret_key)

    def dumps(self, session: dict[str, Any]) -> str:
        """Sign *session* into a cookie value. Handy for seeding test clients."""
        return self._serializer.dumps(session)

    def loads(self, cookie_value: str | None) -> dict[str, Any]:
        """Verify and decode a cookie value. Anything invalid or expired is ``{}``."""
        if not cookie_value:
            return {}
        try:
            data = self._serializer.loads(cookie_value, max_age=self._config.max_age)
        except BadData:
            return {}
        return data if isinstance(data, dict) else {}

    async def __call__(self, request: Request, next: Next) -> Response:
        session = self.loads(request.cookies.get(self._config.cookie_name))
        token = _session_var.set(session)
        try:
            response = await next(request)
        finally:
            _session_var.reset(token)

        # Re-signed on every response so the max_age window slides
        cfg = self._config
        return response.with_cookie(
            cfg.cookie_name,
            self.dumps(session),
            max_age=cfg.max_age,
            path=cfg.path,
            domain=cfg.domain,
            secure=cfg.secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )
