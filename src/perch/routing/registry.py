"""Explicit route registration.

Handlers are marked with ``@route(...)``; nothing is discovered by
scanning directories. ``collect_routes()`` turns marked controllers
and functions into ``HandlerSpec`` descriptors for the table builder::

    class ProductController(Controller):
        @route("/product/{id}", "GET", name="product_show")
        def show(self, id: int) -> dict:
            ...

    specs = collect_routes(ProductController)
"""

import inspect
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

ROUTE_ATTR = "__perch_routes__"


@dataclass(frozen=True, slots=True)
class RouteDeclaration:
    """Arguments captured by the ``@route`` decorator."""

    url: str
    http_method: str = "GET"
    name: str | None = None
    middleware: Any = None


@dataclass(frozen=True, slots=True)
class HandlerSpec:
    """An unvalidated route: a declaration bound to its handler.

    ``controller`` is the class owning the handler method, or ``None``
    for plain functions.
    """

    url: str
    http_method: str
    handler: Callable[..., Any]
    name: str | None = None
    middleware: Any = None
    controller: type | None = None

    @property
    def route_name(self) -> str:
        """Declared name, defaulting to the handler's name."""
        return self.name or self.handler.__name__


def route(
    url: str,
    http_method: str = "GET",
    *,
    name: str | None = None,
    middleware: Any = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a function or controller method as a route handler.

    Decorators may be stacked to serve several URLs from one handler;
    each stacked route then needs its own ``name``.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        declared = getattr(func, ROUTE_ATTR, ())
        setattr(func, ROUTE_ATTR, (*declared, RouteDeclaration(url, http_method, name, middleware)))
        return func

    return decorator


def declared_routes(func: Any) -> tuple[RouteDeclaration, ...]:
    """Route declarations attached to *func* (top decorator first)."""
    return tuple(reversed(getattr(func, ROUTE_ATTR, ())))


def _controller_handlers(controller: type) -> Iterator[Callable[..., Any]]:
    # Base classes first, then definition order; overrides keep the base position.
    seen: dict[str, Callable[..., Any]] = {}
    for klass in reversed(controller.__mro__):
        for attr_name, attr in vars(klass).items():
            if inspect.isfunction(attr):
                seen[attr_name] = attr
            elif attr_name in seen:
                del seen[attr_name]
    yield from seen.values()


def collect_routes(*controllers: Any) -> list[HandlerSpec]:
    """Build handler specs from controller classes and plain functions.

    Order follows argument order, then method definition order; the
    router uses it to break ties between equally specific routes.
    """
    specs: list[HandlerSpec] = []
    for target in controllers:
        if isinstance(target, type):
            for func in _controller_handlers(target):
                for decl in declared_routes(func):
                    specs.append(
                        HandlerSpec(
                            url=decl.url,
                            http_method=decl.http_method,
                            handler=func,
                            name=decl.name,
                            middleware=decl.middleware,
                            controller=target,
                        )
                    )
        elif callable(target):
            declarations = declared_routes(target)
            if not declarations:
                msg = f"{target!r} has no @route declaration."
                raise TypeError(msg)
            for decl in declarations:
                specs.append(
                    HandlerSpec(
                        url=decl.url,
                        http_method=decl.http_method,
                        handler=target,
                        name=decl.name,
                        middleware=decl.middleware,
                    )
                )
        else:
            msg = f"Expected a controller class or a function, got {target!r}."
            raise TypeError(msg)
    return specs
