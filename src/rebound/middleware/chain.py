"""Onion composition of middleware around a route handler.

The first middleware in the list is outermost: it runs first on the way
in and last on the way out. The innermost continuation is the route
handler itself.
"""

from collections.abc import Sequence
from typing import Any

from rebound._internal.invoke import invoke
from rebound.context import RequestContext
from rebound.http.request import Request
from rebound.http.response import AnyResponse, to_response
from rebound.middleware.protocol import Middleware, Next, RouteHandler


def compose(middleware: Sequence[Middleware], handler: RouteHandler) -> Next:
    """Build a single ``Next`` callable running *middleware* around *handler*."""

    async def dispatch(req: Request, ctx: RequestContext) -> AnyResponse:
        return to_response(await invoke(handler, req, ctx))

    chain: Next = dispatch
    for mw in reversed(middleware):
        outer = chain

        async def make_next(
            req: Request,
            ctx: RequestContext,
            _mw: Any = mw,
            _next: Next = outer,
        ) -> AnyResponse:
            return to_response(await invoke(_mw, req, ctx, _next))

        chain = make_next

    return chain


async def wrap_middlewares(
    middleware: Sequence[Middleware],
    handler: RouteHandler,
    request: Request,
    ctx: RequestContext,
) -> AnyResponse:
    """Run *request* through *middleware* and *handler*, returning one response."""
    return await compose(middleware, handler)(request, ctx)
