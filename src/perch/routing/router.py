"""Route matcher.

Resolves ``(method, path)`` against a built ``RouteTable``:

1. Normalize the path (no query string, no trailing slash).
2. Consult the resolution cache, keyed by a hash of method and path.
3. Exact fast path: a static route registered under that very URL.
4. Otherwise scan the parametric routes of that method with the same
   number of segments. Every literal segment must be equal. The
   candidate with the fewest parametric segments wins; among equally
   specific candidates the one registered first wins.
5. Bind the placeholders in template order and coerce them to their
   declared types. A segment that does not parse raises
   ``RouteParameterError`` (an HTTP 400).

A path nothing matches yields ``None``; the dispatcher decides
between 404 and 405 via ``allowed_methods()``.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from collections.abc import Mapping

from perch.errors import RouteNotFoundError
from perch.routing.params import convert_params
from perch.routing.route import MatchedRoute, Route, normalize_url, placeholder_name, split_segments
from perch.routing.table import RouteTable

logger = logging.getLogger("perch.routing")

# (route, parametric segment count, registration index, segment matchers)
type _Candidate = tuple[Route, int, int, tuple[tuple[bool, str], ...]]


class Router:
    """Matches requests against a route table.

    Usage::

        router = Router(table)
        matched = router.match("GET", "/users/42")
        matched.route.name     # "user_show"
        matched.params["id"]   # 42
    """

    __slots__ = ("_by_shape", "_cache_size", "_lock", "_resolutions", "_table")

    def __init__(self, table: RouteTable, *, cache_size: int = 1024) -> None:
        self._table = table
        self._cache_size = cache_size
        self._lock = threading.Lock()
        # sha1(method + path) -> (route, raw params); LRU order
        self._resolutions: OrderedDict[str, tuple[Route, dict[str, str]]] = OrderedDict()
        # method -> segment count -> parametric candidates in registration order
        self._by_shape: dict[str, dict[int, list[_Candidate]]] = {}
        for index, route in enumerate(table.routes):
            if not route.is_parametric:
                continue
            matchers = tuple(
                (True, name) if (name := placeholder_name(segment)) else (False, segment)
                for segment in route.segments
            )
            score = sum(1 for is_param, _ in matchers if is_param)
            shapes = self._by_shape.setdefault(route.http_method, {})
            shapes.setdefault(len(matchers), []).append((route, score, index, matchers))

    @property
    def table(self) -> RouteTable:
        return self._table

    @property
    def routes(self) -> tuple[Route, ...]:
        """All routes in registration order."""
        return self._table.routes

    # -- Matching --

    def match(self, method: str, path: str) -> MatchedRoute | None:
        """Resolve a request to a route, or ``None`` when nothing matches.

        Raises ``RouteParameterError`` when a segment matched a typed
        placeholder but cannot be converted to its type.
        """
        method = method.upper()
        path = normalize_url(path)
        resolved = self._resolve(method, path)
        if resolved is None:
            return None
        route, raw_params = resolved
        params = convert_params(raw_params, route.param_types)
        return MatchedRoute(route=route, raw_params=raw_params, params=params)

    def allowed_methods(self, path: str) -> frozenset[str]:
        """HTTP methods that have a route matching *path*."""
        path = normalize_url(path)
        methods = set(self._table.by_method_and_url) | set(self._by_shape)
        return frozenset(m for m in methods if self._resolve(m, path) is not None)

    def _resolve(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        key = hashlib.sha1(f"{method} {path}".encode(), usedforsecurity=False).hexdigest()
        with self._lock:
            hit = self._resolutions.get(key)
            if hit is not None:
                self._resolutions.move_to_end(key)
                return hit

        resolved = self._lookup(method, path)
        if resolved is None:
            return None

        with self._lock:
            self._resolutions[key] = resolved
            while len(self._resolutions) > self._cache_size:
                self._resolutions.popitem(last=False)
        return resolved

    def _lookup(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        static = self._table.by_method_and_url.get(method, {}).get(path)
        if static is not None and not static.is_parametric:
            return static, {}

        segments = split_segments(path)
        candidates = self._by_shape.get(method, {}).get(len(segments), ())
        best: _Candidate | None = None
        best_params: dict[str, str] = {}
        for candidate in candidates:
            route, score, index, matchers = candidate
            if best is not None and (score, index) >= (best[1], best[2]):
                continue
            params: dict[str, str] = {}
            for (is_param, expected), actual in zip(matchers, segments, strict=True):
                if is_param:
                    params[expected] = actual
                elif expected != actual:
                    break
            else:
                best, best_params = candidate, params

        if best is None:
            return None
        logger.debug("Matched %s %s to route %r", method, path, best[0].name)
        return best[0], best_params

    def clear_cache(self) -> None:
        with self._lock:
            self._resolutions.clear()

    @property
    def cached_resolutions(self) -> int:
        with self._lock:
            return len(self._resolutions)

    # -- Lookup by name --

    def is_route_exists(self, name: str) -> bool:
        return name in self._table.by_name

    def get_route_info(self, name: str) -> Route:
        """Return the route registered as *name*.

        Raises ``RouteNotFoundError`` for unknown names.
        """
        try:
            return self._table.by_name[name]
        except KeyError:
            msg = f"Route {name!r} not found"
            raise RouteNotFoundError(msg) from None

    def get_route_link(self, name: str, params: Mapping[str, object] | None = None, **kwargs: object) -> str:
        """Build the URL of route *name*, filling in its placeholders.

        Unknown routes yield ``"#name"`` so a broken link shows up in the
        rendered page instead of failing the request. Placeholders without
        a supplied value are left as they are.
        """
        route = self._table.by_name.get(name)
        if route is None:
            return f"#{name}"
        values = {**(params or {}), **kwargs}
        if route.url == "/":
            return route.url
        parts = []
        for segment in route.segments:
            param = placeholder_name(segment)
            parts.append(str(values[param]) if param is not None and param in values else segment)
        return "/" + "/".join(parts)
