"""In-process uvicorn listener.

Binds the socket ourselves so bind errors surface as ``OSError`` in the
caller and port 0 resolves to a real port before the first request,
then runs ``uvicorn.Server.serve()`` as a task on the current loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass

import uvicorn

from rebound._internal.asgi import ASGIApp
from rebound.config import ServerConfig

logger = logging.getLogger("rebound.server")

# Seconds to wait for uvicorn to report startup
_STARTUP_TIMEOUT = 10.0


def bind_socket(host: str, port: int) -> socket.socket:
    """Create a listening-ready TCP socket bound to *host*:*port*."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


@dataclass(slots=True)
class Listener:
    """A running uvicorn server bound to ``port``."""

    port: int
    server: uvicorn.Server
    task: asyncio.Task[None]
    sock: socket.socket

    async def close(self) -> None:
        """Stop accepting connections and wait for uvicorn to shut down."""
        self.server.should_exit = True
        try:
            await self.task
        finally:
            with contextlib.suppress(OSError):
                self.sock.close()


async def start_listener(make_app: Callable[[int], ASGIApp], config: ServerConfig) -> Listener:
    """Serve the app built by *make_app* with uvicorn.

    *make_app* receives the bound port. Returns once uvicorn accepts
    connections.
    """
    sock = bind_socket(config.host, config.port)
    port = sock.getsockname()[1]

    uv_config = uvicorn.Config(
        make_app(port),
        log_level=config.log_level,
        access_log=config.access_log,
        lifespan="off",
    )
    server = uvicorn.Server(uv_config)
    task = asyncio.create_task(server.serve(sockets=[sock]), name="rebound-http")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + _STARTUP_TIMEOUT
    while not server.started:
        if task.done():
            sock.close()
            task.result()
            msg = f"HTTP server on {config.host}:{port} exited during startup"
            raise RuntimeError(msg)
        if loop.time() > deadline:
            server.should_exit = True
            await task
            sock.close()
            msg = f"HTTP server on {config.host}:{port} did not start in {_STARTUP_TIMEOUT}s"
            raise RuntimeError(msg)
        await asyncio.sleep(0.01)

    logger.info("Listening on http://%s:%d", config.host, port)
    return Listener(port=port, server=server, task=task, sock=sock)
