"""Route bundles and the request dispatcher.

A ``RouteBundle`` is what a build produces: a route map from route id to
handler, a matcher resolving a pathname to a route id, and an optional
not-found handler. ``make_request`` is the single dispatch entry point:
prefix handling, route resolution and middleware composition, producing
exactly one response per request.

Usage::

    bundle = RouteBundle({
        "/health": lambda request, ctx: Response("ok"),
        "/users/{user_id}": get_user,
    })

    response = await bundle.make_request(request)

Mounting one bundle under another's wildcard route::

    parent = RouteBundle({"/api/{path:path}": child.mount()})

The child sees ``/users/42`` when the parent receives ``/api/users/42``.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from rebound._internal.invoke import invoke
from rebound.context import RequestContext
from rebound.errors import ConfigurationError
from rebound.http.request import Request
from rebound.http.response import AnyResponse, Response, to_response
from rebound.middleware.chain import wrap_middlewares
from rebound.middleware.protocol import Middleware, RouteHandler
from rebound.routing.params import is_wildcard
from rebound.routing.route import RouteMatch
from rebound.routing.router import Router

logger = logging.getLogger("rebound.dispatch")

type RouteMatcher = Callable[[str], RouteMatch | None]


@dataclass(frozen=True, slots=True)
class MakeRequestOptions:
    """Options for ``RouteBundle.make_request``.

    ``automatically_remove_pathname_prefix`` (default ``True``) strips the
    prefix a parent router consumed when this bundle is mounted on a
    wildcard route such as ``/foo/{path:path}``: the bundle then only sees
    ``/{path}``. This works when the parent forwards its route parameters
    on the request (see ``RouteBundle.mount``).

    ``remove_pathname_prefix`` strips a literal prefix instead.
    ``automatically_remove_pathname_prefix`` must be ``False`` when it is
    given.
    """

    remove_pathname_prefix: str | None = None
    automatically_remove_pathname_prefix: bool = True
    middleware: Sequence[Middleware] = ()


def not_found(request: Request, ctx: RequestContext) -> Response:  # noqa: ARG001
    """Default not-found handler."""
    return Response("Not found", status=404)


def resolve_pathname(request: Request, options: MakeRequestOptions) -> str:
    """Compute the pathname this bundle should route on.

    Raises ``ConfigurationError`` for conflicting options, or when the
    parent's route parameters hold zero or several wildcard values.
    """
    pathname = request.path

    if options.remove_pathname_prefix:
        if options.automatically_remove_pathname_prefix:
            msg = (
                "automatically_remove_pathname_prefix and remove_pathname_prefix "
                "cannot both be specified"
            )
            raise ConfigurationError(msg)
        return pathname.replace(options.remove_pathname_prefix, "", 1) or "/"

    if options.automatically_remove_pathname_prefix and request.route_params is not None:
        # Route params of the parent route hosting this bundle; when mounted at
        # /foo/{path:path} we want the {path} segments
        wildcards = [value for value in request.route_params.values() if is_wildcard(value)]
        if not wildcards:
            msg = "No wildcard route parameters found"
            raise ConfigurationError(msg)
        if len(wildcards) > 1:
            msg = "Only one wildcard route parameter is supported"
            raise ConfigurationError(msg)
        pathname = "/" + "/".join(wildcards[0])

    return pathname


class RouteBundle:
    """A resolved route map plus its matcher and not-found handler.

    Immutable after construction. When no *route_matcher* is given, the
    route ids are compiled into a ``Router``.
    """

    __slots__ = ("handle_404", "route_map", "route_matcher")

    def __init__(
        self,
        route_map: Mapping[str, RouteHandler],
        *,
        route_matcher: RouteMatcher | None = None,
        handle_404: RouteHandler | None = None,
    ) -> None:
        self.route_map: Mapping[str, RouteHandler] = MappingProxyType(dict(route_map))
        self.route_matcher: RouteMatcher = route_matcher or Router(self.route_map)
        self.handle_404: RouteHandler = handle_404 or not_found

    async def make_request(
        self,
        request: Request,
        options: MakeRequestOptions | None = None,
    ) -> AnyResponse:
        """Dispatch *request* through the middleware chain to its route."""
        options = options or MakeRequestOptions()
        pathname = resolve_pathname(request, options)

        match = self.route_matcher(pathname)
        route_fn = self.route_map.get(match.route_id) if match is not None else None

        ctx = RequestContext(
            pathname=pathname,
            route_id=match.route_id if route_fn is not None else None,
            route_params=dict(match.route_params) if route_fn is not None else {},
            response_defaults=Response(),
        )

        if route_fn is None:
            logger.debug("No route for %s %s", request.method, pathname)
            route_fn = self.handle_404

        return await wrap_middlewares(options.middleware, route_fn, request, ctx)

    def handler(
        self, options: MakeRequestOptions | None = None
    ) -> Callable[[Request], Awaitable[AnyResponse]]:
        """Bind *options* and return a single-argument request handler."""

        async def handle(request: Request) -> AnyResponse:
            return await self.make_request(request, options)

        return handle

    def mount(self, options: MakeRequestOptions | None = None) -> RouteHandler:
        """Return a route handler that forwards to this bundle.

        Register it on a wildcard route of a parent bundle. The forwarded
        request carries the parent's route parameters so automatic prefix
        removal can find the wildcard.
        """

        async def mounted(request: Request, ctx: RequestContext) -> AnyResponse:
            forwarded = request.with_route_params(ctx.route_params)
            return to_response(await invoke(self.make_request, forwarded, options))

        return mounted
