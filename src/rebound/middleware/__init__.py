"""Middleware — Protocol-based, no inheritance required.

A middleware is any callable matching:
    async def mw(request: Request, ctx: RequestContext, next: Next) -> AnyResponse

Built-in middleware:
    create_with_logger -- Attach a logger to ``ctx.logger``
"""

from rebound.middleware.chain import wrap_middlewares
from rebound.middleware.logger import Logger, create_with_logger
from rebound.middleware.protocol import Middleware, Next, RouteHandler

__all__ = [
    "Logger",
    "Middleware",
    "Next",
    "RouteHandler",
    "create_with_logger",
    "wrap_middlewares",
]
