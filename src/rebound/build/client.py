"""Serving-side proxy for the build pipeline."""

import logging

from rebound.build.result import BuildResult, from_wire
from rebound.errors import BuilderUnavailable, RpcError
from rebound.rpc.peer import RpcPeer

logger = logging.getLogger("rebound.build")


class BuilderClient:
    """Asks the builder for the latest build over RPC.

    Every failure mode of the round trip (closed channel, remote error,
    timeout, malformed payload) surfaces as ``BuilderUnavailable`` so the
    front door can answer with one distinct response.
    """

    __slots__ = ("_peer", "_timeout")

    def __init__(self, peer: RpcPeer, *, timeout: float | None = None) -> None:
        self._peer = peer
        self._timeout = timeout

    async def wait_for_available_build(self) -> BuildResult:
        """Block until the builder has finished at least one build, then return the latest."""
        try:
            payload = await self._peer.call("wait_for_available_build", timeout=self._timeout)
        except TimeoutError as exc:
            msg = f"No build became available within {self._timeout}s"
            raise BuilderUnavailable(msg) from exc
        except RpcError as exc:
            msg = f"Builder unreachable: {exc}"
            raise BuilderUnavailable(msg) from exc

        try:
            return from_wire(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            msg = f"Malformed build result from builder: {payload!r}"
            raise BuilderUnavailable(msg) from exc
