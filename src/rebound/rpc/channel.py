"""Message channels — ordered, bidirectional transport for RPC frames.

A channel moves JSON-compatible ``dict`` messages between two endpoints.
It knows nothing about calls or replies; correlation lives in
``rebound.rpc.peer`` and is written once for every transport.

Two transports share the same frame codec, so a payload that would not
survive a process boundary fails the same way in-process:

    ``loopback_pair()``  -- two connected in-process endpoints (asyncio queues)
    ``StreamChannel``    -- length-prefixed frames over asyncio streams
                            (TCP or Unix socket, cross-process)
"""

import asyncio
import json
import logging
import struct
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from rebound.errors import ChannelClosed

logger = logging.getLogger("rebound.rpc")

type Message = dict[str, Any]

# Frame header: payload length as unsigned 32-bit big-endian
_HEADER = struct.Struct(">I")
MAX_FRAME_SIZE = 16 * 1024 * 1024  # 16 MB


def encode_frame(message: Message) -> bytes:
    """Serialize *message* to a frame payload."""
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def decode_frame(payload: bytes) -> Message:
    """Parse a frame payload back into a message."""
    message = json.loads(payload)
    if not isinstance(message, dict):
        msg = f"Expected a JSON object frame, got {type(message).__name__}"
        raise ValueError(msg)
    return message


class Channel(Protocol):
    """One endpoint of a bidirectional message channel.

    ``receive()`` raises ``ChannelClosed`` once either side has closed
    and no buffered messages remain.
    """

    async def send(self, message: Message) -> None: ...

    async def receive(self) -> Message: ...

    async def close(self) -> None: ...


# Queue sentinel marking end of stream
_CLOSED = None


class LoopbackChannel:
    """In-process channel endpoint backed by a pair of asyncio queues.

    Create connected endpoints with ``loopback_pair()``.
    """

    __slots__ = ("_closed", "_inbox", "_outbox")

    def __init__(
        self,
        inbox: asyncio.Queue[bytes | None],
        outbox: asyncio.Queue[bytes | None],
    ) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    async def send(self, message: Message) -> None:
        if self._closed:
            msg = "Cannot send on a closed channel"
            raise ChannelClosed(msg)
        await self._outbox.put(encode_frame(message))

    async def receive(self) -> Message:
        if self._closed and self._inbox.empty():
            msg = "Channel closed"
            raise ChannelClosed(msg)
        payload = await self._inbox.get()
        if payload is _CLOSED:
            # Leave the sentinel for any other waiting receiver
            self._inbox.put_nowait(_CLOSED)
            msg = "Channel closed"
            raise ChannelClosed(msg)
        return decode_frame(payload)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake our own receiver and tell the peer no more frames are coming
        self._inbox.put_nowait(_CLOSED)
        self._outbox.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed


def loopback_pair() -> tuple[LoopbackChannel, LoopbackChannel]:
    """Two connected in-process endpoints: what one sends, the other receives."""
    a_to_b: asyncio.Queue[bytes | None] = asyncio.Queue()
    b_to_a: asyncio.Queue[bytes | None] = asyncio.Queue()
    return LoopbackChannel(b_to_a, a_to_b), LoopbackChannel(a_to_b, b_to_a)


class StreamChannel:
    """Channel endpoint over an asyncio stream pair.

    Frames are a 4-byte big-endian length followed by the JSON payload.
    Works over any transport ``asyncio`` exposes as streams.
    """

    __slots__ = ("_closed", "_reader", "_write_lock", "_writer")

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False

    async def send(self, message: Message) -> None:
        if self._closed:
            msg = "Cannot send on a closed channel"
            raise ChannelClosed(msg)
        payload = encode_frame(message)
        async with self._write_lock:
            try:
                self._writer.write(_HEADER.pack(len(payload)) + payload)
                await self._writer.drain()
            except (ConnectionError, RuntimeError) as exc:
                msg = "Channel transport failed while sending"
                raise ChannelClosed(msg) from exc

    async def receive(self) -> Message:
        if self._closed:
            msg = "Channel closed"
            raise ChannelClosed(msg)
        try:
            header = await self._reader.readexactly(_HEADER.size)
            (length,) = _HEADER.unpack(header)
            if length > MAX_FRAME_SIZE:
                msg = f"Frame of {length} bytes exceeds {MAX_FRAME_SIZE}"
                raise ChannelClosed(msg)
            payload = await self._reader.readexactly(length)
        except (asyncio.IncompleteReadError, ConnectionError) as exc:
            msg = "Channel closed by peer"
            raise ChannelClosed(msg) from exc
        try:
            return decode_frame(payload)
        except ValueError as exc:
            msg = f"Malformed frame from peer: {exc}"
            raise ChannelClosed(msg) from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            logger.debug("Peer reset the connection during close")

    @property
    def closed(self) -> bool:
        return self._closed


async def open_channel(host: str, port: int) -> StreamChannel:
    """Connect to a ``serve_channel`` listener and return the channel."""
    reader, writer = await asyncio.open_connection(host, port)
    return StreamChannel(reader, writer)


async def serve_channel(
    on_channel: Callable[[StreamChannel], Awaitable[None]],
    host: str = "127.0.0.1",
    port: int = 0,
) -> asyncio.Server:
    """Accept connections and hand each one to *on_channel* as a ``StreamChannel``.

    Returns the started ``asyncio.Server``; read the bound port from
    ``server.sockets[0].getsockname()[1]``.
    """

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await on_channel(StreamChannel(reader, writer))

    return await asyncio.start_server(handle, host, port)
