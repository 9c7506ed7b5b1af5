"""RPC peer — correlated calls and notifications over any ``Channel``.

Each side of a channel wraps its endpoint in an ``RpcPeer`` and exposes
named functions to the other side. ``call()`` awaits the matching reply;
``notify()`` is fire-and-forget.

Wire format (one JSON object per frame)::

    {"type": "call",   "id": 7, "method": "wait_for_available_build", "args": []}
    {"type": "result", "id": 7, "value": {...}}
    {"type": "error",  "id": 7, "message": "..."}
    {"type": "notify", "method": "on_build_start", "args": []}

Usage::

    peer = RpcPeer(channel, {"ping": lambda: "pong"}, name="server")
    peer.start()
    value = await peer.call("wait_for_available_build", timeout=5.0)
"""

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from rebound._internal.invoke import invoke
from rebound.errors import ChannelClosed, RemoteCallError
from rebound.rpc.channel import Channel, Message

logger = logging.getLogger("rebound.rpc")


class RpcPeer:
    """One side of an RPC conversation.

    The receive loop runs as a background task between ``start()`` and
    ``stop()``. Incoming calls are each handled in their own task so a
    slow remote function (``wait_for_available_build`` blocks until a
    build exists) never holds up replies to other calls.

    ``stop()`` ends the loop and fails pending calls but leaves the
    channel open; whoever created the channel closes it.
    """

    __slots__ = (
        "_channel",
        "_functions",
        "_ids",
        "_name",
        "_pending",
        "_receive_task",
        "_stopped",
        "_tasks",
    )

    def __init__(
        self,
        channel: Channel,
        functions: Mapping[str, Callable[..., Any]] | None = None,
        *,
        name: str = "peer",
    ) -> None:
        self._channel = channel
        self._functions: dict[str, Callable[..., Any]] = dict(functions or {})
        self._name = name
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._receive_task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._receive_task is not None and not self._receive_task.done()

    def expose(self, method: str, function: Callable[..., Any]) -> None:
        """Make *function* callable by the remote side as *method*."""
        self._functions[method] = function

    def start(self) -> None:
        """Start the receive loop. Must be called from a running event loop."""
        if self._receive_task is not None:
            msg = f"RPC peer {self._name!r} already started"
            raise RuntimeError(msg)
        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"rebound-rpc-{self._name}"
        )

    async def stop(self) -> None:
        """Stop the receive loop and fail pending calls with ``ChannelClosed``."""
        self._stopped = True
        if self._receive_task is not None:
            self._receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receive_task
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._fail_pending(ChannelClosed(f"RPC peer {self._name!r} stopped"))

    # -- Outgoing --

    async def call(self, method: str, *args: Any, timeout: float | None = None) -> Any:
        """Call *method* on the remote side and await its reply.

        Raises ``RemoteCallError`` if the remote function raised,
        ``ChannelClosed`` if the channel closes first, and ``TimeoutError``
        if *timeout* elapses.
        """
        if self._stopped:
            msg = f"RPC peer {self._name!r} stopped"
            raise ChannelClosed(msg)

        call_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future
        try:
            await self._channel.send(
                {"type": "call", "id": call_id, "method": method, "args": list(args)}
            )
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(call_id, None)

    async def notify(self, method: str, *args: Any) -> None:
        """Send a fire-and-forget notification."""
        await self._channel.send({"type": "notify", "method": method, "args": list(args)})

    # -- Incoming --

    async def _receive_loop(self) -> None:
        try:
            while True:
                message = await self._channel.receive()
                self._dispatch(message)
        except ChannelClosed as exc:
            logger.debug("RPC peer %r: %s", self._name, exc)
            self._stopped = True
            self._fail_pending(exc)
        except Exception as exc:
            logger.exception("RPC peer %r: receive loop failed", self._name)
            self._stopped = True
            self._fail_pending(ChannelClosed(f"RPC peer {self._name!r} failed: {exc}"))

    def _dispatch(self, message: Message) -> None:
        kind = message.get("type")
        if kind in ("result", "error"):
            future = self._pending.get(message.get("id", -1))
            if future is None or future.done():
                # Reply to a call that already timed out
                logger.debug("RPC peer %r: dropping stale %s", self._name, kind)
                return
            if kind == "result":
                future.set_result(message.get("value"))
            else:
                future.set_exception(
                    RemoteCallError(message.get("method", "?"), message.get("message", ""))
                )
        elif kind in ("call", "notify"):
            task = asyncio.create_task(self._handle_incoming(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.warning("RPC peer %r: ignoring frame of type %r", self._name, kind)

    async def _handle_incoming(self, message: Message) -> None:
        method = message.get("method", "")
        args = message.get("args", [])
        function = self._functions.get(method)
        is_call = message["type"] == "call"

        if function is None:
            if is_call:
                await self._reply_error(message, method, f"Unknown method {method!r}")
            else:
                logger.debug("RPC peer %r: no handler for notification %r", self._name, method)
            return

        try:
            value = await invoke(function, *args)
        except Exception as exc:
            if is_call:
                await self._reply_error(message, method, f"{type(exc).__name__}: {exc}")
            else:
                logger.exception("RPC peer %r: notification %r failed", self._name, method)
            return

        if not is_call:
            return
        try:
            await self._channel.send({"type": "result", "id": message["id"], "value": value})
        except ChannelClosed:
            logger.debug("RPC peer %r: channel closed before replying to %r", self._name, method)
        except (TypeError, ValueError) as exc:
            await self._reply_error(message, method, f"Unserializable result: {exc}")

    async def _reply_error(self, message: Message, method: str, text: str) -> None:
        with contextlib.suppress(ChannelClosed):
            await self._channel.send(
                {"type": "error", "id": message["id"], "method": method, "message": text}
            )

    def _fail_pending(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
