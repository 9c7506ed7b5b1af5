"""Headless dev server — serves whatever the bundler built last.

Talks to the builder only through its RPC channel. It never builds
anything itself, and it never decides on its own (timers, file watching)
that a bundle is stale: it asks the builder on every request.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from rebound._internal.invoke import invoke
from rebound.backends.base import select_backend
from rebound.build.client import BuilderClient
from rebound.build.result import BuildResult, from_wire
from rebound.config import ServerConfig
from rebound.middleware.protocol import Middleware
from rebound.rpc.channel import Channel
from rebound.rpc.peer import RpcPeer
from rebound.server.controller import RequestHandlerController
from rebound.server.handler import FrontDoor
from rebound.server.listener import Listener, start_listener

logger = logging.getLogger("rebound.server")


@dataclass(slots=True)
class HeadlessServer:
    """A running headless server. Call ``stop()`` to shut it down."""

    port: int
    controller: RequestHandlerController
    peer: RpcPeer
    listener: Listener

    async def stop(self) -> None:
        """Close the listener, stop RPC, then release backend resources.

        The RPC channel itself is left open for its owner to close.
        """
        await self.listener.close()
        await self.peer.stop()
        self.controller.teardown()


async def start_headless_server(
    *,
    config: ServerConfig,
    rpc_channel: Channel,
    middleware: Sequence[Middleware] = (),
    on_listening: Callable[[int], Any] | None = None,
    on_build_start: Callable[[], Any] | None = None,
    on_build_end: Callable[[BuildResult], Any] | None = None,
) -> HeadlessServer:
    """Start serving bundles announced on *rpc_channel*.

    *middleware* wraps every route of every loaded bundle.
    *on_build_start* / *on_build_end* are driven by the bundler's
    notifications; *on_listening* receives the bound port.
    """
    functions: dict[str, Callable[..., Any]] = {}
    if on_build_start is not None:
        functions["on_build_start"] = on_build_start
    if on_build_end is not None:

        async def build_ended(payload: dict[str, Any]) -> None:
            await invoke(on_build_end, from_wire(payload))

        functions["on_build_end"] = build_ended

    backend = select_backend(config.backend, middleware)
    peer = RpcPeer(rpc_channel, functions, name="server")
    peer.start()

    controller = RequestHandlerController(
        BuilderClient(peer, timeout=config.build_wait_timeout),
        backend,
    )

    try:
        listener = await start_listener(
            lambda port: FrontDoor(controller.get_handler, default_origin=config.origin_for(port)),
            config,
        )
    except BaseException:
        await peer.stop()
        controller.teardown()
        raise

    if on_listening is not None:
        await invoke(on_listening, listener.port)

    return HeadlessServer(port=listener.port, controller=controller, peer=peer, listener=listener)
