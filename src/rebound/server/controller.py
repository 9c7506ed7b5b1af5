"""Request handler controller — the build-to-serve handoff.

Holds at most one loaded ``Artifact`` and the build generation it came
from. Every handler acquisition asks the builder for the latest build
first; the artifact is reused only while the builder keeps reporting the
same ``built_at_ms``.

States::

    Empty ──load──▶ Cached(t) ──same t──▶ Cached(t)
                        │
                        └──new t'──▶ Cached(t')   (old artifact released)

    any ──teardown()──▶ Disposed

No lock guards this path. Two requests racing on the first acquisition
after a rebuild may both load the new generation; the last one to finish
wins and the other artifact is released.
"""

import logging

from rebound.backends.base import Artifact, ExecutionBackend
from rebound.build.client import BuilderClient
from rebound.build.result import BuildFailure, BuildResult
from rebound.errors import ReboundError
from rebound.http.request import Request
from rebound.http.response import Response
from rebound.server.errors import BUILD_ERROR_MESSAGE

logger = logging.getLogger("rebound.server")


async def build_error_handler(request: Request) -> Response:  # noqa: ARG001
    """Constant handler served while the latest build is a failure."""
    return Response(BUILD_ERROR_MESSAGE, status=500)


class RequestHandlerController:
    """Caches the loaded handler keyed by build generation."""

    __slots__ = ("_artifact", "_backend", "_builder", "_disposed", "load_count")

    def __init__(self, builder: BuilderClient, backend: ExecutionBackend) -> None:
        self._builder = builder
        self._backend = backend
        self._artifact: Artifact | None = None
        self._disposed = False
        self.load_count = 0

    @property
    def backend(self) -> ExecutionBackend:
        return self._backend

    @property
    def generation(self) -> int | None:
        """``built_at_ms`` of the cached artifact, or ``None`` when empty."""
        return self._artifact.built_at_ms if self._artifact is not None else None

    async def get_handler(self) -> Artifact:
        """Return a handler valid for the builder's latest build.

        Call this for every request and do not hold on to the result
        across requests: the builder's timestamp is the only source of
        truth for whether a cached handler is stale.
        """
        if self._disposed:
            msg = "Request handler controller has been torn down"
            raise ReboundError(msg)

        build = await self._builder.wait_for_available_build()

        cached = self._artifact
        if cached is not None and cached.built_at_ms == build.built_at_ms:
            return cached

        artifact = await self._load(build)
        if self._disposed:
            # Torn down while loading
            artifact.release()
            msg = "Request handler controller has been torn down"
            raise ReboundError(msg)

        previous, self._artifact = self._artifact, artifact
        if previous is not None:
            previous.release()
        return artifact

    def teardown(self) -> None:
        """Release the cached artifact and every backend resource."""
        if self._disposed:
            return
        self._disposed = True
        if self._artifact is not None:
            self._artifact.release()
            self._artifact = None
        self._backend.close()

    async def _load(self, build: BuildResult) -> Artifact:
        self.load_count += 1
        if isinstance(build, BuildFailure):
            logger.warning("Serving build error page (build at %d failed)", build.built_at_ms)
            return Artifact(built_at_ms=build.built_at_ms, handle=build_error_handler)

        handle = await self._backend.load(build.bundle_path, build.built_at_ms)
        logger.info(
            "Loaded build %d from %s (%s backend)",
            build.built_at_ms,
            build.bundle_path,
            self._backend.name,
        )
        return Artifact(built_at_ms=build.built_at_ms, handle=handle, backend=self._backend)
