"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, ctx: RequestContext, next: Next) -> AnyResponse: ...

Call ``next(request, ctx)`` to continue down the chain, or return a
response without calling it to short-circuit. ``Response`` and
``StreamingResponse`` share the ``.with_header()`` / ``.with_status()``
chainable API, so middleware can modify either uniformly.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from rebound.context import RequestContext
from rebound.http.request import Request
from rebound.http.response import AnyResponse

# The next handler in the middleware chain
type Next = Callable[[Request, RequestContext], Awaitable[AnyResponse]]

# def or async def; returns a response or a value to_response accepts
type RouteHandler = Callable[[Request, RequestContext], Any]


class Middleware(Protocol):
    """Protocol for rebound middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def timing(request, ctx, next):
            start = time.monotonic()
            response = await next(request, ctx)
            elapsed = time.monotonic() - start
            return response.with_header("X-Time", f"{elapsed:.3f}")

        # Class middleware
        class RequireToken:
            async def __call__(self, request, ctx, next):
                ...
    """

    async def __call__(self, request: Request, ctx: RequestContext, next: Next) -> AnyResponse: ...
