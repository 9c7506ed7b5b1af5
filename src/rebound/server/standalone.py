"""Serve a single RouteBundle with no build pipeline behind it.

Useful for production-like runs of an already-built bundle and for
hosting a bundle inside tests.
"""

from dataclasses import dataclass

from rebound.bundle import MakeRequestOptions, RouteBundle
from rebound.config import ServerConfig
from rebound.server.handler import FrontDoor, RequestHandler
from rebound.server.listener import Listener, start_listener


@dataclass(slots=True)
class BundleServer:
    """A running standalone bundle server."""

    port: int
    listener: Listener

    async def stop(self) -> None:
        await self.listener.close()


def bundle_app(
    bundle: RouteBundle,
    options: MakeRequestOptions | None = None,
    *,
    default_origin: str = "http://localhost",
) -> FrontDoor:
    """ASGI app serving *bundle* directly."""
    handler = bundle.handler(options)

    async def get_handler() -> RequestHandler:
        return handler

    return FrontDoor(get_handler, default_origin=default_origin)


async def serve_bundle(
    bundle: RouteBundle,
    *,
    config: ServerConfig | None = None,
    options: MakeRequestOptions | None = None,
) -> BundleServer:
    """Start an HTTP server for *bundle* and return once it is listening."""
    config = config or ServerConfig()
    listener = await start_listener(
        lambda port: bundle_app(bundle, options, default_origin=config.origin_for(port)),
        config,
    )
    return BundleServer(port=listener.port, listener=listener)

