"""Middleware combinator tree and declaration parsing.

Routes declare their gates in any of these forms::

    middleware=Authenticated                       # one middleware
    middleware="auth"                              # a registered name
    middleware=["auth", "api"]                     # implicit MatchAll
    middleware={"all": ["auth", "api"]}
    middleware={"any": [Administrator, Owner]}
    middleware={"custom": {"all": ["auth"], "any": [Administrator, Owner]}}

``parse_middleware()`` validates a declaration and turns it into a
``MiddlewareNode``. Every malformed declaration raises
``RouteMiddlewareError`` with a message naming what is wrong, so the
route table build fails before any request is served.

Nodes serialize back to the mapping form with ``node_to_data()``,
middlewares written as ``module:qualname`` references.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from perch._internal.imports import callable_ref, import_ref
from perch.errors import RouteMiddlewareError
from perch.middleware.route import RouteMiddleware

if TYPE_CHECKING:
    from perch.middleware.registry import MiddlewareRegistry

type MiddlewareClass = type[RouteMiddleware]


@dataclass(frozen=True, slots=True)
class Single:
    """A single middleware."""

    middleware: MiddlewareClass


@dataclass(frozen=True, slots=True)
class MatchAll:
    """Passes iff every child passes. Evaluated in order, stops at the first failure."""

    children: tuple[MiddlewareClass, ...]


@dataclass(frozen=True, slots=True)
class MatchAny:
    """Passes iff one child passes. Evaluated in order, stops at the first pass."""

    children: tuple[MiddlewareClass, ...]


@dataclass(frozen=True, slots=True)
class MatchCustom:
    """An ``all`` branch evaluated first, then an ``any`` branch."""

    all: MatchAll | None = None
    any: MatchAny | None = None


type MiddlewareNode = Single | MatchAll | MatchAny | MatchCustom

_LEAF_KINDS: dict[str, type[MatchAll] | type[MatchAny]] = {"all": MatchAll, "any": MatchAny}


def parse_middleware(
    declaration: Any,
    registry: MiddlewareRegistry | None = None,
) -> MiddlewareNode | None:
    """Validate a middleware declaration and build its node.

    ``None`` and an empty top-level list mean "no middleware" and
    return ``None``. String references resolve through *registry*, or
    by import when they look like ``module:qualname``.
    """
    match declaration:
        case None:
            return None
        case Single(middleware=middleware):
            return Single(_resolve_ref(middleware, registry, "Middleware declaration"))
        case MatchAll(children=children) | MatchAny(children=children):
            kind = "all" if isinstance(declaration, MatchAll) else "any"
            return _leaf_list(kind, children, registry)
        case MatchCustom():
            branches = {
                key: list(node.children)
                for key, node in (("all", declaration.all), ("any", declaration.any))
                if node is not None
            }
            return _custom(branches, registry)
        case str():
            if not declaration:
                msg = "Middleware must be a non-empty string"
                raise RouteMiddlewareError(msg)
            return Single(_resolve_ref(declaration, registry, "Middleware declaration"))
        case type():
            return Single(_resolve_ref(declaration, registry, "Middleware declaration"))
        case list() | tuple():
            if not declaration:
                return None
            return _leaf_list("all", declaration, registry)
        case Mapping():
            if len(declaration) != 1:
                msg = "First level of a middleware mapping must contain only one key!"
                raise RouteMiddlewareError(msg)
            ((key, value),) = declaration.items()
            if key in _LEAF_KINDS:
                return _leaf_list(key, value, registry)
            if key == "custom":
                return _custom(value, registry)
            msg = f"Unknown middleware combinator {key!r}. Use 'all', 'any' or 'custom'."
            raise RouteMiddlewareError(msg)
        case _:
            msg = f"Invalid middleware declaration {declaration!r}"
            raise RouteMiddlewareError(msg)


def _leaf_list(
    kind: str,
    items: Any,
    registry: MiddlewareRegistry | None,
) -> MatchAll | MatchAny:
    node_cls = _LEAF_KINDS[kind]
    label = node_cls.__name__
    if not items:
        msg = f"{label} list must not be empty!"
        raise RouteMiddlewareError(msg)
    if not isinstance(items, (list, tuple)):
        msg = f"{label} must be given a list of middlewares!"
        raise RouteMiddlewareError(msg)
    if _has_duplicates(items):
        msg = f"{label} list must contain unique values only!"
        raise RouteMiddlewareError(msg)
    children = tuple(_resolve_ref(item, registry, f"{label} list") for item in items)
    # "auth" and Authenticated are the same middleware
    if _has_duplicates(children):
        msg = f"{label} list must contain unique values only!"
        raise RouteMiddlewareError(msg)
    return node_cls(children)


def _custom(branches: Any, registry: MiddlewareRegistry | None) -> MatchCustom:
    if not branches:
        msg = "MatchCustom must not be empty!"
        raise RouteMiddlewareError(msg)
    if not isinstance(branches, Mapping):
        msg = "MatchCustom must be given a mapping with 'all' and/or 'any' keys!"
        raise RouteMiddlewareError(msg)
    if len(branches) > 2:
        msg = "MatchCustom must contain max 2 elements!"
        raise RouteMiddlewareError(msg)
    for key in branches:
        if key not in _LEAF_KINDS:
            msg = f"MatchCustom keys must be 'all' or 'any', got {key!r}!"
            raise RouteMiddlewareError(msg)
    all_node = _leaf_list("all", branches["all"], registry) if "all" in branches else None
    any_node = _leaf_list("any", branches["any"], registry) if "any" in branches else None
    return MatchCustom(all=all_node, any=any_node)


def _has_duplicates(items: Any) -> bool:
    seen: list[Any] = []
    for item in items:
        if item in seen:
            return True
        seen.append(item)
    return False


def _resolve_ref(
    ref: Any,
    registry: MiddlewareRegistry | None,
    label: str,
) -> MiddlewareClass:
    if isinstance(ref, type):
        if issubclass(ref, RouteMiddleware):
            return ref
        msg = f"{ref.__qualname__} is not a RouteMiddleware subclass"
        raise RouteMiddlewareError(msg)
    if not isinstance(ref, str) or not ref:
        msg = f"{label} must contain only middleware references!"
        raise RouteMiddlewareError(msg)
    if registry is not None and ref in registry:
        return registry.resolve(ref)
    if ":" in ref:
        try:
            obj = import_ref(ref)
        except (ImportError, AttributeError, ValueError) as exc:
            msg = f"Cannot import middleware {ref!r}: {exc}"
            raise RouteMiddlewareError(msg) from exc
        return _resolve_ref(obj, registry, label)
    msg = f"Unknown middleware {ref!r}. Register it on the app or reference it as 'module:ClassName'."
    raise RouteMiddlewareError(msg)


# -- Serialization --


def node_to_data(node: MiddlewareNode | None) -> Any:
    """Serialize a node into its declaration mapping form."""
    match node:
        case None:
            return None
        case Single(middleware=middleware):
            return callable_ref(middleware)
        case MatchAll(children=children):
            return {"all": [callable_ref(c) for c in children]}
        case MatchAny(children=children):
            return {"any": [callable_ref(c) for c in children]}
        case MatchCustom(all=all_node, any=any_node):
            branches: dict[str, list[str]] = {}
            if all_node is not None:
                branches["all"] = [callable_ref(c) for c in all_node.children]
            if any_node is not None:
                branches["any"] = [callable_ref(c) for c in any_node.children]
            return {"custom": branches}
    msg = f"Not a middleware node: {node!r}"
    raise TypeError(msg)


def node_from_data(data: Any) -> MiddlewareNode | None:
    """Inverse of ``node_to_data()``."""
    return parse_middleware(data)


def iter_middlewares(node: MiddlewareNode | None) -> tuple[MiddlewareClass, ...]:
    """Every middleware class in *node*, in evaluation order."""
    match node:
        case Single(middleware=middleware):
            return (middleware,)
        case MatchAll(children=children) | MatchAny(children=children):
            return children
        case MatchCustom(all=all_node, any=any_node):
            return iter_middlewares(all_node) + iter_middlewares(any_node)
    return ()
