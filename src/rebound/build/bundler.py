"""Headless bundler — the builder side of the RPC channel.

Wraps a user-supplied build function (whatever actually bundles the app)
and publishes its results. Builds never overlap: each ``rebuild()`` holds
a lock for the whole build, so ``built_at_ms`` order always matches the
order in which rebuilds were requested.

The only RPC function exposed to servers is ``wait_for_available_build``.
Servers are also sent ``on_build_start`` / ``on_build_end`` notifications.

Usage::

    def build() -> str:
        subprocess.run(["make", "bundle"], check=True)
        return "dist/bundle.py"

    bundler = await start_headless_bundler(build, channels=[channel])
    ...
    await bundler.rebuild()  # e.g. from a file watcher
"""

import asyncio
import contextlib
import logging
import os
import time
from collections.abc import Callable, Iterable
from typing import Any

from rebound._internal.invoke import invoke
from rebound.build.result import BuildFailure, BuildResult, BuildSuccess, to_wire
from rebound.errors import ChannelClosed
from rebound.rpc.channel import Channel
from rebound.rpc.peer import RpcPeer

logger = logging.getLogger("rebound.build")

# Returns the path of the built bundle; def or async def; raise to fail the build
type BuildFunction = Callable[[], Any]


class HeadlessBundler:
    """Serializes builds and serves the latest result over RPC."""

    __slots__ = (
        "_available",
        "_build",
        "_last_built_at_ms",
        "_latest",
        "_lock",
        "_peers",
        "_tasks",
        "build_count",
    )

    def __init__(
        self,
        build: BuildFunction,
        *,
        initial_bundle_path: str | os.PathLike[str] | None = None,
    ) -> None:
        self._build = build
        self._lock = asyncio.Lock()
        self._available = asyncio.Event()
        self._latest: BuildResult | None = None
        self._last_built_at_ms = 0
        self._peers: list[RpcPeer] = []
        self._tasks: set[asyncio.Task[BuildResult]] = set()
        self.build_count = 0

        if initial_bundle_path is not None:
            self._publish(BuildSuccess(os.fspath(initial_bundle_path), self._next_timestamp()))

    @property
    def latest(self) -> BuildResult | None:
        """The most recent build result, or ``None`` before the first build."""
        return self._latest

    def attach(self, channel: Channel) -> RpcPeer:
        """Serve this bundler's RPC functions on *channel*."""
        peer = RpcPeer(
            channel,
            {"wait_for_available_build": self.wait_for_available_build},
            name="bundler",
        )
        peer.start()
        self._peers.append(peer)
        return peer

    async def wait_for_available_build(self) -> dict[str, Any]:
        """RPC: wait until at least one build finished, return the latest (wire form)."""
        await self._available.wait()
        assert self._latest is not None
        return to_wire(self._latest)

    async def rebuild(self) -> BuildResult:
        """Run one build. Waits for any in-flight build to finish first."""
        async with self._lock:
            await self._broadcast("on_build_start")
            started = time.monotonic()
            try:
                output = await invoke(self._build)
                if output is None:
                    msg = "Build function returned no bundle path"
                    raise ValueError(msg)
            except Exception as exc:
                logger.exception("Build failed")
                result: BuildResult = BuildFailure(
                    built_at_ms=self._next_timestamp(),
                    message=f"{type(exc).__name__}: {exc}",
                )
            else:
                result = BuildSuccess(os.fspath(output), self._next_timestamp())
                logger.info(
                    "Built %s in %.0fms", result.bundle_path, (time.monotonic() - started) * 1000
                )

            self.build_count += 1
            self._publish(result)
            await self._broadcast("on_build_end", to_wire(result))
            return result

    def schedule_rebuild(self) -> asyncio.Task[BuildResult]:
        """Start ``rebuild()`` in the background (for file watchers and callbacks)."""
        task = asyncio.create_task(self.rebuild(), name="rebound-rebuild")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def stop(self) -> None:
        """Cancel in-flight builds and stop serving RPC. Channels stay open."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await asyncio.gather(*(peer.stop() for peer in self._peers))
        self._peers.clear()

    # -- Internal --

    def _next_timestamp(self) -> int:
        # Wall-clock millis, bumped when two builds land in the same millisecond
        now = int(time.time() * 1000)
        self._last_built_at_ms = max(now, self._last_built_at_ms + 1)
        return self._last_built_at_ms

    def _publish(self, result: BuildResult) -> None:
        self._latest = result
        self._available.set()

    async def _broadcast(self, method: str, *args: Any) -> None:
        for peer in self._peers:
            with contextlib.suppress(ChannelClosed):
                await peer.notify(method, *args)


async def start_headless_bundler(
    build: BuildFunction,
    *,
    channels: Iterable[Channel] = (),
    initial_bundle_path: str | os.PathLike[str] | None = None,
    build_on_start: bool = True,
) -> HeadlessBundler:
    """Create a bundler, serve it on *channels* and kick off the first build.

    With *initial_bundle_path* the bundler starts out with that bundle as
    its first successful build and does not build on start.
    """
    bundler = HeadlessBundler(build, initial_bundle_path=initial_bundle_path)
    for channel in channels:
        bundler.attach(channel)
    if build_on_start and initial_bundle_path is None:
        bundler.schedule_rebuild()
    return bundler
