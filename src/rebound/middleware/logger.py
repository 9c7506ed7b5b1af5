"""Logger injection middleware.

Attaches a logger to ``ctx.logger`` so route handlers and downstream
middleware log through the same object. Anything with ``debug``,
``info``, ``warning`` and ``error`` methods works; a stdlib
``logging.Logger`` is the default.
"""

import logging
from typing import Any, Protocol

from rebound.context import RequestContext
from rebound.http.request import Request
from rebound.http.response import AnyResponse
from rebound.middleware.protocol import Middleware, Next


class Logger(Protocol):
    """Structural type accepted by ``create_with_logger``."""

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...
    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...
    def warning(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...
    def error(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...


def create_with_logger(logger: Logger | None = None) -> Middleware:
    """Return middleware that sets ``ctx.logger`` before continuing.

    Usage::

        bundle.make_request(request, MakeRequestOptions(
            middleware=[create_with_logger(structlog.get_logger())],
        ))
    """
    resolved = logger if logger is not None else logging.getLogger("rebound.request")

    async def with_logger(request: Request, ctx: RequestContext, next: Next) -> AnyResponse:
        ctx.logger = resolved
        return await next(request, ctx)

    return with_logger
