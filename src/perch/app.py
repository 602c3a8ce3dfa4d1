"""Perch application class.

Mutable during setup (routes, controllers, middleware, error handlers).
Frozen at runtime when ``__call__()`` is first invoked: the route table
is built (or loaded from the cache) and compiled into a ``Router``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.types import ErrorHandler, Handler
from perch.cache.adapter import CacheAdapter
from perch.cache.factory import create_cache_adapter
from perch.config import AppConfig
from perch.data.entity import Entity
from perch.data.repository import CachedRepository
from perch.data.store import EntityStore, MemoryEntityStore
from perch.middleware.protocol import Middleware
from perch.middleware.registry import MiddlewareRegistry
from perch.middleware.route import RouteMiddleware
from perch.routing.registry import HandlerSpec, collect_routes
from perch.routing.router import Router
from perch.routing.table import RouteTableBuilder
from perch.server.handler import handle_request

logger = logging.getLogger("perch.server")


class App:
    """The perch application.

    Mutable during setup. Frozen at runtime when ``__call__()`` is first
    invoked (or when a ``TestClient`` enters).

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check so exactly one
        thread builds the route table, even when several ASGI workers
        receive their first request concurrently.
    """

    __slots__ = (
        "_cache",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware",
        "_middleware_list",
        "_middleware_registry",
        "_pending_routes",
        "_stores",
        # Compiled state (populated by _freeze)
        "_router",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        cache: CacheAdapter | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._cache: CacheAdapter | None = cache
        self._stores: dict[type[Entity], EntityStore[Any]] = {}
        self._pending_routes: list[HandlerSpec] = []
        self._middleware_list: list[Middleware] = []
        self._middleware_registry: MiddlewareRegistry = MiddlewareRegistry.with_defaults()
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._router: Router | None = None
        self._middleware: tuple[Callable[..., Any], ...] = ()

    # -- Route registration --

    def route(
        self,
        url: str,
        http_method: str = "GET",
        *,
        name: str | None = None,
        middleware: Any = None,
    ) -> Callable[[Handler], Handler]:
        """Register a plain function as a route handler via decorator.

        Args:
            url: URL template. Use ``{param}`` for path parameters; their
                types come from the handler's annotations.
            http_method: One of GET, POST, PUT, PATCH, DELETE.
            name: Route name for ``url_for()``. Defaults to the function name.
            middleware: Route middleware declaration (a class, a registered
                name, a list, or an ``all``/``any``/``custom`` mapping).
        """

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            self._pending_routes.append(HandlerSpec(url, http_method, func, name, middleware))
            return func

        return decorator

    def add_controller(self, *controllers: Any) -> None:
        """Register every ``@route``-decorated method of controller classes.

        Plain functions decorated with ``perch.route`` are accepted too.
        """
        self._check_not_frozen()
        self._pending_routes.extend(collect_routes(*controllers))

    # -- Middleware --

    def add_middleware(self, middleware: Middleware) -> None:
        """Add an app-level middleware to the pipeline."""
        self._check_not_frozen()
        self._middleware_list.append(middleware)

    def register_middleware(self, name: str, middleware: type[RouteMiddleware]) -> None:
        """Make a route middleware referenceable by *name* in route declarations."""
        self._check_not_frozen()
        self._middleware_registry.register(name, middleware)

    @property
    def middleware_registry(self) -> MiddlewareRegistry:
        return self._middleware_registry

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Cache & data --

    @property
    def cache(self) -> CacheAdapter:
        """The shared cache adapter, created from config on first use."""
        if self._cache is None:
            self._cache = create_cache_adapter(self.config)
        return self._cache

    def repository[E: Entity](
        self,
        entity_cls: type[E],
        store: EntityStore[E] | None = None,
    ) -> CachedRepository[E]:
        """A cached repository for *entity_cls* backed by the app cache.

        Without a *store*, the app's process-local ``MemoryEntityStore``
        for *entity_cls* is used; every call shares the same one, as they
        share the cache.
        """
        if store is None:
            store = self._stores.get(entity_cls)
            if store is None:
                store = self._stores[entity_cls] = MemoryEntityStore(entity_cls)
        return CachedRepository(entity_cls, store, self.cache, self.config)

    # -- Routing --

    @property
    def router(self) -> Router:
        """The compiled router. Freezes the app."""
        self._ensure_frozen()
        assert self._router is not None
        return self._router

    def url_for(self, name: str, **params: Any) -> str:
        """URL of route *name*; ``"#name"`` for unknown routes."""
        return self.router.get_route_link(name, params)

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()

        assert self._router is not None

        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            config=self.config,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup so route table errors surface before
        the first request.
        """
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Build the route table and compile the router.

        MUST only be called while holding _freeze_lock. A configuration
        error leaves the app unfrozen and propagates.
        """
        builder = RouteTableBuilder(
            self.config,
            cache=self.cache,
            registry=self._middleware_registry,
        )
        for spec in self._pending_routes:
            builder.add(spec)
        table = builder.build()

        self._router = Router(table, cache_size=self.config.resolution_cache_size)
        self._middleware = tuple(self._middleware_list)
        self._frozen = True
        logger.info("App ready: %d routes, %d middleware", len(table), len(self._middleware))

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, controllers, and middleware first."
            )
            raise RuntimeError(msg)
