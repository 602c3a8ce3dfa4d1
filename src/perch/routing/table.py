"""Route table builder.

Turns ``HandlerSpec`` registrations into a validated ``RouteTable``
indexed by route name and by ``(http_method, url)``. Any invalid route
aborts the whole build with a ``ConfigurationError`` subclass; a table
is never partially built.

Outside debug mode the finished table is written to the cache under
``cache:routes_list``, and later builds with the same registrations
rehydrate it from there instead of introspecting every handler again.
"""

from __future__ import annotations

import hashlib
import inspect
import json
import logging
import types
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union, get_origin

from perch._internal.imports import callable_ref, import_ref, is_importable_ref
from perch.config import AppConfig
from perch.errors import (
    ConfigurationError,
    DuplicateRouteError,
    InvalidHttpMethodError,
    InvalidRouteMethodParameterTypeError,
    RouteMiddlewareError,
    RouteParameterExpectedError,
)
from perch.http.request import Request
from perch.middleware.combinators import iter_middlewares, node_to_data, parse_middleware
from perch.routing.params import TYPE_NAMES
from perch.routing.registry import HandlerSpec, collect_routes
from perch.routing.route import HTTP_METHODS, Route, extract_route_params, normalize_url

if TYPE_CHECKING:
    from perch.cache.adapter import CacheAdapter
    from perch.middleware.registry import MiddlewareRegistry

logger = logging.getLogger("perch.routing")

ROUTES_CACHE_KEY = "cache:routes_list"


@dataclass(frozen=True, slots=True)
class RouteTable:
    """All routes of an app, in registration order, with two indices."""

    routes: tuple[Route, ...]
    by_name: Mapping[str, Route]
    by_method_and_url: Mapping[str, Mapping[str, Route]]

    @classmethod
    def from_routes(cls, routes: Iterable[Route]) -> RouteTable:
        """Index *routes*. Raises ``DuplicateRouteError`` on a clash."""
        ordered = tuple(routes)
        by_name: dict[str, Route] = {}
        by_method_and_url: dict[str, dict[str, Route]] = {}
        for route in ordered:
            if route.name in by_name:
                msg = (
                    f"Route name {route.name!r} is already registered "
                    f"({by_name[route.name].handler_ref})!"
                )
                raise DuplicateRouteError(msg)
            per_method = by_method_and_url.setdefault(route.http_method, {})
            if route.url in per_method:
                msg = (
                    f"Route for {route.http_method} {route.url!r} already exists "
                    f"(route {per_method[route.url].name!r})!"
                )
                raise DuplicateRouteError(msg)
            by_name[route.name] = route
            per_method[route.url] = route
        return cls(routes=ordered, by_name=by_name, by_method_and_url=by_method_and_url)

    def __len__(self) -> int:
        return len(self.routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self.routes)

    # -- Serialization --

    def to_data(self) -> list[dict[str, Any]]:
        return [route_to_data(route) for route in self.routes]

    @classmethod
    def from_data(
        cls,
        data: Iterable[Mapping[str, Any]],
        registry: MiddlewareRegistry | None = None,
    ) -> RouteTable:
        return cls.from_routes(route_from_data(item, registry) for item in data)


def route_to_data(route: Route) -> dict[str, Any]:
    """JSON-ready descriptor of *route*; callables become ``module:qualname``."""
    return {
        "url": route.url,
        "http_method": route.http_method,
        "name": route.name,
        "handler": route.handler_ref,
        "controller": callable_ref(route.controller) if route.controller else None,
        "middleware": node_to_data(route.middleware),
        "route_params": list(route.route_params),
        "param_types": dict(route.param_types),
    }


def route_from_data(
    data: Mapping[str, Any],
    registry: MiddlewareRegistry | None = None,
) -> Route:
    """Rebuild a route from ``route_to_data()`` output by importing its references."""
    controller_ref = data.get("controller")
    return Route(
        url=data["url"],
        http_method=data["http_method"],
        handler=import_ref(data["handler"]),
        name=data["name"],
        middleware=parse_middleware(data.get("middleware"), registry),
        route_params=tuple(data.get("route_params", ())),
        param_types=dict(data.get("param_types", {})),
        controller=import_ref(controller_ref) if controller_ref else None,
    )


class RouteTableBuilder:
    """Collects route registrations and builds the table.

    Usage::

        builder = RouteTableBuilder(config, cache=cache)
        builder.add_controller(ProductController)
        builder.add(HandlerSpec("/health", "GET", health))
        table = builder.build()
    """

    __slots__ = ("_cache", "_config", "_registry", "_specs")

    def __init__(
        self,
        config: AppConfig | None = None,
        cache: CacheAdapter | None = None,
        registry: MiddlewareRegistry | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._cache = cache
        self._registry = registry
        self._specs: list[HandlerSpec] = []

    def add(self, spec: HandlerSpec) -> None:
        self._specs.append(spec)

    def add_controller(self, *controllers: Any) -> None:
        """Register every ``@route`` of the given controller classes or functions."""
        self._specs.extend(collect_routes(*controllers))

    @property
    def specs(self) -> tuple[HandlerSpec, ...]:
        return tuple(self._specs)

    def build(self) -> RouteTable:
        """Validate every registration and index the result."""
        fingerprint = self._fingerprint()
        cache = None if self._config.debug else self._cache
        if cache is not None:
            cached = self._load_cached(cache, fingerprint)
            if cached is not None:
                return cached

        table = RouteTable.from_routes(self._build_route(spec) for spec in self._specs)
        logger.debug("Built route table with %d routes", len(table))

        if cache is not None:
            self._store(cache, table, fingerprint)
        return table

    # -- Validation --

    def _build_route(self, spec: HandlerSpec) -> Route:
        name = spec.route_name
        ref = callable_ref(spec.handler)

        method = str(spec.http_method).upper()
        if method not in HTTP_METHODS:
            msg = (
                f"Undefined HTTP method {spec.http_method!r} for route {name!r} ({ref}). "
                f"Use one of: {', '.join(sorted(HTTP_METHODS))}."
            )
            raise InvalidHttpMethodError(msg)

        url = normalize_url(spec.url)
        route_params = extract_route_params(url)
        handler_params = _handler_params(spec, name, ref)

        for param in route_params:
            if param not in handler_params:
                msg = (
                    f"Route {name!r} ({ref}) declares placeholder {{{param}}} in {url!r} "
                    f"but the handler has no parameter {param!r}."
                )
                raise RouteParameterExpectedError(msg)
        for param, (_, has_default) in handler_params.items():
            if param not in route_params and not has_default:
                msg = (
                    f"Handler parameter {param!r} of route {name!r} ({ref}) has no "
                    f"placeholder in {url!r} and no default value."
                )
                raise RouteParameterExpectedError(msg)

        try:
            middleware = parse_middleware(spec.middleware, self._registry)
        except RouteMiddlewareError as exc:
            exc.add_note(f"while building route {name!r} ({ref})")
            raise

        return Route(
            url=url,
            http_method=method,
            handler=spec.handler,
            name=name,
            middleware=middleware,
            route_params=route_params,
            param_types={param: handler_params[param][0] for param in route_params},
            controller=spec.controller,
        )

    # -- Persistence --

    def _fingerprint(self) -> str:
        # The signature decides param_types, so a changed annotation rebuilds
        parts = [
            (
                spec.url,
                spec.http_method,
                spec.name,
                callable_ref(spec.handler),
                str(inspect.signature(spec.handler)),
                repr(spec.middleware),
            )
            for spec in self._specs
        ]
        return hashlib.sha1(json.dumps(parts).encode("utf-8"), usedforsecurity=False).hexdigest()

    def _load_cached(self, cache: CacheAdapter, fingerprint: str) -> RouteTable | None:
        raw = cache.get(ROUTES_CACHE_KEY)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            if payload.get("fingerprint") != fingerprint:
                logger.info("Cached route table is stale; rebuilding")
                return None
            table = RouteTable.from_data(payload["routes"], self._registry)
        except (ValueError, KeyError, TypeError, AttributeError, ImportError, ConfigurationError) as exc:
            logger.warning("Discarding unreadable cached route table: %s", exc)
            return None
        logger.debug("Loaded %d routes from cache", len(table))
        return table

    def _store(self, cache: CacheAdapter, table: RouteTable, fingerprint: str) -> None:
        refs = [route.handler_ref for route in table]
        refs += [callable_ref(route.controller) for route in table if route.controller]
        refs += [callable_ref(mw) for route in table for mw in iter_middlewares(route.middleware)]
        if not all(is_importable_ref(ref) for ref in refs):
            logger.debug("Route table references non-importable callables; not caching it")
            return
        payload = {"fingerprint": fingerprint, "routes": table.to_data()}
        cache.set(ROUTES_CACHE_KEY, json.dumps(payload))


def _handler_params(spec: HandlerSpec, name: str, ref: str) -> dict[str, tuple[str, bool]]:
    """Route-bindable handler parameters: name -> (type name, has default).

    ``self`` of controller methods and an injected ``request`` are skipped.
    """
    try:
        signature = inspect.signature(spec.handler, eval_str=True)
    except NameError as exc:
        msg = f"Cannot resolve the annotations of {ref}: {exc}"
        raise ConfigurationError(msg) from exc

    params = list(signature.parameters.values())
    if spec.controller is not None and params:
        params = params[1:]

    result: dict[str, tuple[str, bool]] = {}
    for param in params:
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = param.annotation
        if param.name == "request" or annotation is Request:
            continue
        if annotation is inspect.Parameter.empty:
            type_name = "str"
        elif isinstance(annotation, types.UnionType) or get_origin(annotation) is Union:
            raise InvalidRouteMethodParameterTypeError(str(annotation), param.name, name, ref)
        elif annotation in TYPE_NAMES:
            type_name = TYPE_NAMES[annotation]
        else:
            type_label = getattr(annotation, "__name__", str(annotation))
            raise InvalidRouteMethodParameterTypeError(type_label, param.name, name, ref)
        result[param.name] = (type_name, param.default is not inspect.Parameter.empty)
    return result
