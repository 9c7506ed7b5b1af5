"""ASGI front door — translates ASGI scope/messages to rebound types.

The only component that touches raw ASGI directly. Builds an immutable
``Request`` from the scope and body, asks for the current handler,
dispatches, and sends the response back through ``send()``. Every
exception stops here: the client gets a fixed body, the log gets the
detail.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from rebound._internal.asgi import Receive, Scope, Send, read_body
from rebound.errors import BuilderUnavailable, HTTPError
from rebound.http.request import Request
from rebound.http.response import AnyResponse, StreamingResponse
from rebound.server.errors import (
    builder_unavailable_response,
    http_error_response,
    internal_error_response,
    log_error,
)
from rebound.server.sender import send_response, send_streaming_response

logger = logging.getLogger("rebound.server")

type RequestHandler = Callable[[Request], Awaitable[AnyResponse]]

# Returns the handler to use for the current request
type HandlerSource = Callable[[], Awaitable[RequestHandler]]


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    get_handler: HandlerSource,
    default_origin: str,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    body = await read_body(receive)
    request = Request.from_asgi(scope, body, default_origin=default_origin)

    try:
        handler = await get_handler()
        response = await handler(request)
    except BuilderUnavailable as exc:
        logger.warning("%s %s: %s", request.method, request.path, exc)
        response = builder_unavailable_response()
    except HTTPError as exc:
        response = http_error_response(exc)
    except Exception as exc:
        log_error(exc, request)
        response = internal_error_response()

    started = False

    async def tracked_send(message: dict[str, Any]) -> None:
        nonlocal started
        if message["type"] == "http.response.start":
            started = True
        await send(message)

    try:
        if isinstance(response, StreamingResponse):
            await send_streaming_response(response, tracked_send)
        else:
            await send_response(response, tracked_send)
    except Exception as exc:
        log_error(exc, request)
        if started:
            # Status line is on the wire; let the server drop the connection
            raise
        await send_response(internal_error_response(), send)


class FrontDoor:
    """ASGI application wrapping a ``HandlerSource``.

    Usage::

        app = FrontDoor(controller.get_handler, default_origin="http://localhost:3000")
        uvicorn.run(app)
    """

    __slots__ = ("_default_origin", "_get_handler")

    def __init__(self, get_handler: HandlerSource, *, default_origin: str) -> None:
        self._get_handler = get_handler
        self._default_origin = default_origin

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            return
        await handle_request(
            scope,
            receive,
            send,
            get_handler=self._get_handler,
            default_origin=self._default_origin,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        # Nothing to set up per worker; acknowledge so servers don't wait
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
