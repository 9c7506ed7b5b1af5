"""Invoke helpers — call sync or async callables uniformly.

Route handlers, middleware, 404 handlers, build functions and RPC
functions can all be ``def`` or ``async def``. The sync/async check
lives here and nowhere else.

Usage::

    from rebound._internal.invoke import invoke

    result = await invoke(handler, request, ctx)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await the result if it is awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
