"""Development server — a bundler and a headless server joined by a channel.

Both halves run on the current event loop and share nothing but an
in-process loopback channel. The same halves can be split across
processes by giving each a ``StreamChannel`` instead.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from rebound.build.bundler import BuildFunction, HeadlessBundler, start_headless_bundler
from rebound.build.result import BuildResult
from rebound.config import ServerConfig
from rebound.middleware.protocol import Middleware
from rebound.rpc.channel import LoopbackChannel, loopback_pair
from rebound.server.headless import HeadlessServer, start_headless_server

logger = logging.getLogger("rebound.server")


@dataclass(slots=True)
class DevServer:
    """A running dev server. ``bundler.rebuild()`` triggers a new build."""

    port: int
    server: HeadlessServer
    bundler: HeadlessBundler
    channels: tuple[LoopbackChannel, LoopbackChannel]

    async def stop(self) -> None:
        """Stop server and bundler in parallel, then close both channel ends."""
        await asyncio.gather(self.server.stop(), self.bundler.stop())
        server_end, bundler_end = self.channels
        await server_end.close()
        await bundler_end.close()


async def start_dev_server(
    build: BuildFunction,
    *,
    config: ServerConfig | None = None,
    middleware: Sequence[Middleware] = (),
    initial_bundle_path: str | os.PathLike[str] | None = None,
    on_listening: Callable[[int], Any] | None = None,
    on_build_start: Callable[[], Any] | None = None,
    on_build_end: Callable[[BuildResult], Any] | None = None,
) -> DevServer:
    """Start a dev server that serves the output of *build*.

    *build* is called once on start (unless *initial_bundle_path* is
    given) and again on every ``bundler.rebuild()``. It returns the path
    of the bundle it produced, or raises to report a failed build.

    Usage::

        dev = await start_dev_server(build, config=ServerConfig(port=0))
        print(f"http://localhost:{dev.port}")
        ...
        await dev.stop()
    """
    config = config or ServerConfig()
    server_end, bundler_end = loopback_pair()

    server = await start_headless_server(
        config=config,
        rpc_channel=server_end,
        middleware=middleware,
        on_listening=on_listening,
        on_build_start=on_build_start,
        on_build_end=on_build_end,
    )
    try:
        bundler = await start_headless_bundler(
            build,
            channels=[bundler_end],
            initial_bundle_path=initial_bundle_path,
        )
    except BaseException:
        await server.stop()
        await server_end.close()
        await bundler_end.close()
        raise

    return DevServer(
        port=server.port,
        server=server,
        bundler=bundler,
        channels=(server_end, bundler_end),
    )
