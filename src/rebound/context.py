"""Per-request mutable context.

The inbound ``Request`` is frozen. Everything the dispatch pipeline learns
or injects while handling it (resolved route parameters, the response
scaffold, a logger, arbitrary middleware state) lives here instead, and is
threaded explicitly through every middleware and the route handler.
"""

from dataclasses import dataclass, field
from typing import Any

from rebound.http.request import RouteParamValue
from rebound.http.response import Response


@dataclass(slots=True)
class RequestContext:
    """Mutable record handed to middleware and route handlers.

    Usage::

        async def handler(request, ctx):
            user_id = ctx.route_params["user_id"]
            ctx.logger.info("fetching %s", user_id)
            return Response.json({"user_id": user_id})
    """

    pathname: str = "/"
    route_id: str | None = None
    route_params: dict[str, RouteParamValue] = field(default_factory=dict)
    response_defaults: Response = field(default_factory=Response)
    logger: Any = None
    state: dict[str, Any] = field(default_factory=dict)
