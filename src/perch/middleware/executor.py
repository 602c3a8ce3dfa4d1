"""Route middleware evaluation.

Walks a ``MiddlewareNode`` and produces ``PROCEED`` or the terminal
response that ends the request. Middlewares are instantiated lazily:
a child that short-circuiting makes irrelevant is never constructed.

Failing gates are ordinary return values. Exceptions are reserved for
broken middlewares: anything a middleware raises (other than an
``HTTPError``) is rewrapped as ``RouteMiddlewareError`` with the
original exception as ``__cause__``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from perch.errors import HTTPError, RouteMiddlewareError
from perch.middleware.combinators import (
    MatchAll,
    MatchAny,
    MatchCustom,
    MiddlewareClass,
    MiddlewareNode,
    Single,
    parse_middleware,
)
from perch.middleware.route import PROCEED, MiddlewareContext, MiddlewareOutcome

if TYPE_CHECKING:
    from perch.middleware.registry import MiddlewareRegistry

logger = logging.getLogger("perch.middleware")


async def evaluate(node: MiddlewareNode | None, context: MiddlewareContext) -> MiddlewareOutcome:
    """Evaluate a middleware tree for one request."""
    match node:
        case None:
            return PROCEED
        case Single(middleware=middleware):
            return await run_middleware(middleware, context)
        case MatchAll(children=children):
            return await _match_all(children, context)
        case MatchAny(children=children):
            return await _match_any(children, context)
        case MatchCustom(all=all_node, any=any_node):
            if all_node is not None:
                outcome = await _match_all(all_node.children, context)
                if outcome is not PROCEED:
                    return outcome
            if any_node is not None:
                return await _match_any(any_node.children, context)
            return PROCEED
    msg = f"Not a middleware node: {node!r}"
    raise TypeError(msg)


async def execute_middleware(
    declaration: Any,
    context: MiddlewareContext,
    registry: MiddlewareRegistry | None = None,
) -> MiddlewareOutcome:
    """Validate a raw declaration, then evaluate it.

    Routes built by the table builder carry already-parsed nodes and go
    through ``evaluate()`` directly.
    """
    return await evaluate(parse_middleware(declaration, registry), context)


async def run_middleware(middleware: MiddlewareClass, context: MiddlewareContext) -> MiddlewareOutcome:
    """Instantiate and execute one middleware."""
    try:
        return await middleware(context).execute()
    except (HTTPError, RouteMiddlewareError):
        raise
    except Exception as exc:
        msg = f"Middleware {middleware.__qualname__} failed: {type(exc).__name__}: {exc}"
        raise RouteMiddlewareError(msg) from exc


async def _match_all(
    children: tuple[MiddlewareClass, ...],
    context: MiddlewareContext,
) -> MiddlewareOutcome:
    for middleware in children:
        outcome = await run_middleware(middleware, context)
        if outcome is not PROCEED:
            logger.debug("MatchAll stopped at %s", middleware.__qualname__)
            return outcome
    return PROCEED


async def _match_any(
    children: tuple[MiddlewareClass, ...],
    context: MiddlewareContext,
) -> MiddlewareOutcome:
    outcome: MiddlewareOutcome = PROCEED
    for middleware in children:
        outcome = await run_middleware(middleware, context)
        if outcome is PROCEED:
            return PROCEED
    # Every child failed: the last one's response wins
    return outcome
