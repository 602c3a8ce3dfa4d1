"""Invoke helper — call sync or async callables uniformly.

Route handlers and route middleware ``result()`` methods can be ``def``
or ``async def``. Any code that calls one of them goes through
``invoke()`` so the sync/async check lives in exactly one place.

Usage::

    from perch._internal.invoke import invoke

    result = await invoke(handler, *args, **kwargs)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await the result if it's awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
