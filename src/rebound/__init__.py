"""Rebound — a dev server that always serves the latest build.

A builder rebuilds your bundle whenever sources change; the server asks
it for the newest build on every request and swaps handlers when the
build timestamp moves.

Basic usage::

    from rebound import RouteBundle, start_dev_server

    bundle = RouteBundle({"/health": health})

    async def build():
        ...  # write the bundle module, return its path

    server = await start_dev_server(build)
    ...
    await server.stop()
"""

__version__ = "0.1.0"
__all__ = [
    "AnyResponse",
    "BuildFailure",
    "BuildSuccess",
    "BuilderUnavailable",
    "BundleLoadError",
    "ConfigurationError",
    "HTTPError",
    "MakeRequestOptions",
    "Middleware",
    "Next",
    "NotFound",
    "ReboundError",
    "Request",
    "RequestContext",
    "RequestHandlerController",
    "Response",
    "RouteBundle",
    "Router",
    "ServerConfig",
    "StreamingResponse",
    "create_with_logger",
    "serve_bundle",
    "start_dev_server",
    "start_headless_bundler",
    "start_headless_server",
]

# Public name -> defining module
_LAZY_IMPORTS: dict[str, str] = {
    "AnyResponse": "rebound.http.response",
    "BuildFailure": "rebound.build.result",
    "BuildSuccess": "rebound.build.result",
    "BuilderUnavailable": "rebound.errors",
    "BundleLoadError": "rebound.errors",
    "ConfigurationError": "rebound.errors",
    "HTTPError": "rebound.errors",
    "MakeRequestOptions": "rebound.bundle",
    "Middleware": "rebound.middleware.protocol",
    "Next": "rebound.middleware.protocol",
    "NotFound": "rebound.errors",
    "ReboundError": "rebound.errors",
    "Request": "rebound.http.request",
    "RequestContext": "rebound.context",
    "RequestHandlerController": "rebound.server.controller",
    "Response": "rebound.http.response",
    "RouteBundle": "rebound.bundle",
    "Router": "rebound.routing.router",
    "ServerConfig": "rebound.config",
    "StreamingResponse": "rebound.http.response",
    "create_with_logger": "rebound.middleware.logger",
    "serve_bundle": "rebound.server.standalone",
    "start_dev_server": "rebound.server.dev",
    "start_headless_bundler": "rebound.build.bundler",
    "start_headless_server": "rebound.server.headless",
}


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import rebound`` fast; the server stack (uvicorn) loads only
    when a server entry point is first touched.
    """
    module_path = _LAZY_IMPORTS.get(name)
    if module_path is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_path), name)
