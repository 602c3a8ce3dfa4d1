"""Route and MatchedRoute frozen dataclasses."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from perch._internal.imports import callable_ref
from perch.errors import ConfigurationError

if TYPE_CHECKING:
    from perch.middleware.combinators import MiddlewareNode

HTTP_METHODS: frozenset[str] = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

_PLACEHOLDER = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def normalize_url(url: str) -> str:
    """Normalize a URL template or request path.

    One leading slash, no trailing slash (except the root), no query string::

        "users/"       -> "/users"
        "/users/me?x"  -> "/users/me"
        ""             -> "/"
    """
    path = url.split("?", 1)[0].strip()
    path = "/" + path.strip("/")
    return path


def split_segments(path: str) -> tuple[str, ...]:
    """Split a normalized path into segments. The root has none."""
    if path == "/":
        return ()
    return tuple(path[1:].split("/"))


def placeholder_name(segment: str) -> str | None:
    """Return the parameter name of a ``{name}`` segment, else ``None``."""
    m = _PLACEHOLDER.match(segment)
    return m.group(1) if m else None


def extract_route_params(url: str) -> tuple[str, ...]:
    """Collect ``{name}`` placeholders of a normalized URL, in template order.

    Raises ``ConfigurationError`` when braces appear anywhere but around a
    whole path segment, or when a name repeats.
    """
    names: list[str] = []
    for segment in split_segments(url):
        name = placeholder_name(segment)
        if name is None:
            if "{" in segment or "}" in segment:
                msg = (
                    f"Malformed placeholder {segment!r} in route url {url!r}. "
                    "Placeholders must span a whole path segment, e.g. '/users/{id}'."
                )
                raise ConfigurationError(msg)
            continue
        if name in names:
            msg = f"Placeholder {{{name}}} appears more than once in route url {url!r}."
            raise ConfigurationError(msg)
        names.append(name)
    return tuple(names)


@dataclass(frozen=True, slots=True)
class Route:
    """A validated route definition.

    Created by the route table builder, looked up by the router.
    ``param_types`` maps each placeholder to ``"str"``, ``"int"`` or ``"float"``.
    """

    url: str
    http_method: str
    handler: Callable[..., Any]
    name: str
    middleware: MiddlewareNode | None = None
    route_params: tuple[str, ...] = ()
    param_types: dict[str, str] = field(default_factory=dict)
    controller: type | None = None

    @property
    def handler_ref(self) -> str:
        return callable_ref(self.handler)

    @property
    def segments(self) -> tuple[str, ...]:
        return split_segments(self.url)

    @property
    def is_parametric(self) -> bool:
        return bool(self.route_params)


@dataclass(frozen=True, slots=True)
class MatchedRoute:
    """Result of a successful route match.

    ``raw_params`` holds the path segments as received; ``params`` holds
    the same values coerced to each parameter's declared type.
    """

    route: Route
    raw_params: dict[str, str]
    params: dict[str, str | int | float]

    @property
    def name(self) -> str:
        return self.route.name

    @property
    def url(self) -> str:
        return self.route.url
