"""Execution backend protocol and the cached artifact type."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from rebound._internal.invoke import invoke
from rebound.config import BACKENDS
from rebound.errors import ConfigurationError
from rebound.http.request import Request
from rebound.http.response import AnyResponse, to_response
from rebound.middleware.protocol import Middleware


class ExecutionBackend(Protocol):
    """Loads bundles and invokes the handles it loaded.

    *generation* is the build's ``built_at_ms``. A backend keys whatever
    it caches on it, never on the bundle path alone, so a rebuilt bundle
    at the same path is always loaded fresh.
    """

    name: str

    async def load(self, bundle_path: str, generation: int) -> Any: ...

    async def invoke(self, handle: Any, request: Request) -> AnyResponse: ...

    def release(self, handle: Any) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class Artifact:
    """A loaded handler paired with the build generation it came from.

    Replaced wholesale when a newer build arrives, never mutated. When
    *backend* is ``None`` the handle is a plain request callable (the
    constant build-failure handler).
    """

    built_at_ms: int
    handle: Any
    backend: ExecutionBackend | None = None

    async def __call__(self, request: Request) -> AnyResponse:
        if self.backend is None:
            return to_response(await invoke(self.handle, request))
        return await self.backend.invoke(self.handle, request)

    def release(self) -> None:
        """Free backend resources held by this artifact."""
        if self.backend is not None:
            self.backend.release(self.handle)


def select_backend(name: str, middleware: Sequence[Middleware] = ()) -> ExecutionBackend:
    """Instantiate the backend configured as *name*."""
    if name == "direct":
        from rebound.backends.direct import DirectBackend

        return DirectBackend(middleware)
    if name == "sandbox":
        from rebound.backends.sandbox import SandboxBackend

        return SandboxBackend(middleware)
    msg = f"Unknown execution backend {name!r}. Expected one of: {', '.join(BACKENDS)}"
    raise ConfigurationError(msg)
