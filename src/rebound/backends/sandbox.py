"""Sandbox backend — evaluate each build in its own execution context.

Every build generation gets a fresh ``Sandbox``: a private global
namespace and a private event loop running on a dedicated thread. Bundle
code never shares module globals or a loop with the host or with other
generations.

Requests enter through an event contract rather than a direct call. The
host fires a ``fetch`` event carrying the request; listeners call
``event.respond_with(...)`` (a response or an awaitable producing one) and
may register background work with ``event.wait_until(...)``. The host's
await completes once the response is ready *and* all ``wait_until`` work
has finished.

Inside the sandbox, bundle code sees these extra globals:

    add_event_listener(type, listener)  -- register a ``fetch`` listener
    injected_middleware                 -- the host's middleware tuple

A bundle that registers no ``fetch`` listener but defines a module-level
``bundle`` (``RouteBundle``) is served through ``bundle.make_request`` with
the injected middleware.
"""

import asyncio
import builtins
import contextlib
import inspect
import logging
import threading
import time
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from rebound.bundle import MakeRequestOptions
from rebound.errors import BundleLoadError
from rebound.http.request import Request
from rebound.http.response import AnyResponse, StreamingResponse, to_response
from rebound.middleware.protocol import Middleware

logger = logging.getLogger("rebound.backends")

# Seconds to wait for a sandbox thread to exit on close
_JOIN_TIMEOUT = 5.0


class FetchEvent:
    """The event delivered to ``fetch`` listeners inside a sandbox."""

    __slots__ = ("_bound", "_pending", "_response", "request", "type")

    def __init__(self, request: Request) -> None:
        self.type = "fetch"
        self.request = request
        self._response: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending: list[asyncio.Future[Any]] = []
        self._bound = False

    @property
    def responded(self) -> bool:
        """True once ``respond_with`` has been called."""
        return self._bound or self._response.done()

    def respond_with(self, response: Any) -> None:
        """Provide the response, or an awaitable that resolves to it."""
        if self.responded:
            msg = "respond_with() was already called for this event"
            raise RuntimeError(msg)
        if inspect.isawaitable(response):
            task = asyncio.ensure_future(response)
            self._bound = True
            task.add_done_callback(self._settle)
        else:
            self._response.set_result(response)

    def wait_until(self, awaitable: Any) -> None:
        """Keep the event open until *awaitable* finishes."""
        self._pending.append(asyncio.ensure_future(awaitable))

    async def completion(self) -> AnyResponse:
        """Wait for the response and all ``wait_until`` work."""
        response = await self._response
        if self._pending:
            results = await asyncio.gather(*self._pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("wait_until task failed: %r", result)
        return to_response(response)

    def _settle(self, task: asyncio.Future[Any]) -> None:
        if self._response.done():
            return
        if task.cancelled():
            self._response.cancel()
        elif task.exception() is not None:
            self._response.set_exception(task.exception())  # type: ignore[arg-type]
        else:
            self._response.set_result(task.result())


class Sandbox:
    """One isolated execution context holding one evaluated bundle.

    Usage::

        sandbox = Sandbox(source, filename="bundle.py")
        await sandbox.start()
        response = await sandbox.dispatch_fetch(request)
        sandbox.close()
    """

    __slots__ = (
        "_closed",
        "_extras",
        "_filename",
        "_inflight",
        "_listeners",
        "_lock",
        "_loop",
        "_retired",
        "_source",
        "_thread",
        "name",
        "namespace",
    )

    def __init__(
        self,
        source: str,
        *,
        filename: str = "<bundle>",
        name: str = "rebound-sandbox",
        extras: Mapping[str, Any] | None = None,
    ) -> None:
        self._source = source
        self._filename = filename
        self._extras = dict(extras or {})
        self._listeners: dict[str, list[Callable[[FetchEvent], Any]]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._inflight = 0
        self._retired = False
        self._closed = False
        self.name = name
        self.namespace: dict[str, Any] = {}

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Lifecycle --

    async def start(self) -> None:
        """Start the sandbox thread and evaluate the bundle inside it."""
        loop = asyncio.new_event_loop()
        self._loop = loop
        self._thread = threading.Thread(target=self._run, args=(loop,), name=self.name, daemon=True)
        self._thread.start()
        try:
            await self._submit(self._evaluate())
        except BaseException:
            self.close()
            raise

    def retire(self) -> None:
        """Close as soon as no dispatched request is still running."""
        with self._lock:
            self._retired = True
            idle = self._inflight == 0
        if idle:
            self.close(wait=False)

    def close(self, *, wait: bool = True) -> None:
        """Stop the sandbox loop, joining its thread unless *wait* is false."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(loop.stop)
        if wait:
            self.join(_JOIN_TIMEOUT)

    def join(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the sandbox thread. True if it exited."""
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Sandbox %s did not stop within %.1fs", self.name, timeout)
            return False
        return True

    # -- Bundle-facing API --

    def add_event_listener(self, event_type: str, listener: Callable[[FetchEvent], Any]) -> None:
        """Register *listener* for *event_type* (only ``fetch`` is dispatched)."""
        self._listeners.setdefault(event_type, []).append(listener)

    # -- Host-facing API --

    async def dispatch_fetch(self, request: Request) -> AnyResponse:
        """Fire a ``fetch`` event for *request* and await its completion."""
        with self._lock:
            if self._closed:
                msg = f"Sandbox {self.name} is closed"
                raise RuntimeError(msg)
            self._inflight += 1

        streaming = False
        try:
            response = await self._submit(self._handle_fetch(request))
            if isinstance(response, StreamingResponse) and isinstance(
                response.chunks, AsyncIterator
            ):
                # Chunks are produced on the sandbox loop; pull them across
                streaming = True
                return replace(response, chunks=self._bridge(response.chunks))
            return response
        finally:
            if not streaming:
                self._finish()

    # -- Internal --

    def _run(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _submit(self, coro: Any) -> Any:
        assert self._loop is not None
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return await asyncio.wrap_future(future)

    async def _evaluate(self) -> None:
        namespace: dict[str, Any] = {
            "__name__": "__sandbox__",
            "__file__": self._filename,
            "__builtins__": builtins,
            "add_event_listener": self.add_event_listener,
            **self._extras,
        }
        code = compile(self._source, self._filename, "exec")
        exec(code, namespace)  # noqa: S102
        self.namespace = namespace

        if self._listeners.get("fetch"):
            return

        bundle = namespace.get("bundle")
        if bundle is None or not callable(getattr(bundle, "make_request", None)):
            msg = (
                f"Bundle {self._filename!r} registers no fetch listener and "
                "defines no module-level 'bundle'."
            )
            raise BundleLoadError(msg)

        options = MakeRequestOptions(middleware=tuple(namespace.get("injected_middleware", ())))

        def serve_bundle(event: FetchEvent) -> None:
            event.respond_with(bundle.make_request(event.request, options))

        self.add_event_listener("fetch", serve_bundle)

    async def _handle_fetch(self, request: Request) -> AnyResponse:
        event = FetchEvent(request)
        for listener in self._listeners.get("fetch", ()):
            result = listener(event)
            if inspect.isawaitable(result):
                event.wait_until(result)
        if not event.responded:
            msg = "No fetch listener called respond_with()"
            raise RuntimeError(msg)
        return await event.completion()

    async def _bridge(self, chunks: AsyncIterator[Any]) -> AsyncIterator[Any]:
        iterator = aiter(chunks)

        async def pull() -> tuple[bool, Any]:
            try:
                return False, await anext(iterator)
            except StopAsyncIteration:
                return True, None

        try:
            while True:
                exhausted, chunk = await self._submit(pull())
                if exhausted:
                    break
                yield chunk
        finally:
            with contextlib.suppress(RuntimeError):
                if not self._closed:
                    await self._submit(_aclose(iterator))
            self._finish()

    def _finish(self) -> None:
        with self._lock:
            self._inflight -= 1
            close_now = self._retired and self._inflight == 0
        if close_now:
            self.close(wait=False)


async def _aclose(iterator: AsyncIterator[Any]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class SandboxBackend:
    """Execution backend running each build generation in its own ``Sandbox``."""

    name = "sandbox"

    __slots__ = ("_middleware", "_sandboxes", "load_count")

    def __init__(self, middleware: Sequence[Middleware] = ()) -> None:
        self._middleware = tuple(middleware)
        self._sandboxes: set[Sandbox] = set()
        self.load_count = 0

    async def load(self, bundle_path: str, generation: int) -> Sandbox:
        source = await asyncio.to_thread(Path(bundle_path).read_text, encoding="utf-8")
        sandbox = Sandbox(
            source,
            filename=bundle_path,
            name=f"rebound-sandbox-{generation}",
            extras={"injected_middleware": self._middleware},
        )
        await sandbox.start()
        self._sandboxes.add(sandbox)
        self.load_count += 1
        logger.debug("Started %s for %s", sandbox.name, bundle_path)
        return sandbox

    async def invoke(self, handle: Sandbox, request: Request) -> AnyResponse:
        return await handle.dispatch_fetch(request)

    def release(self, handle: Sandbox) -> None:
        self._sandboxes.discard(handle)
        handle.retire()

    def close(self) -> None:
        sandboxes = list(self._sandboxes)
        self._sandboxes.clear()
        for sandbox in sandboxes:
            sandbox.close(wait=False)
        # One shared deadline for all threads
        deadline = time.monotonic() + _JOIN_TIMEOUT
        for sandbox in sandboxes:
            sandbox.join(max(0.0, deadline - time.monotonic()))
