"""rebound exception hierarchy.

Shared across the dispatcher, the RPC layer, the execution backends and
the front door so every module raises and catches the same types.
"""

from dataclasses import dataclass


class ReboundError(Exception):
    """Base for all rebound-specific errors."""


class ConfigurationError(ReboundError):
    """Raised when dispatch options or server configuration are invalid.

    Signals programmer misuse. Never converted into an HTTP response by
    ``make_request``; it propagates to the caller.
    """


class BundleLoadError(ReboundError):
    """Raised when a built bundle exposes no request entry point."""


@dataclass(frozen=True, slots=True)
class HTTPError(ReboundError):
    """An error that maps directly to an HTTP status code."""

    status: int
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status=404, detail=detail)


# -- RPC --


class RpcError(ReboundError):
    """Base for message channel failures."""


class ChannelClosed(RpcError):
    """The channel was closed while a call was pending or on receive."""


class RemoteCallError(RpcError):
    """The remote side raised while handling a correlated call."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
        self.message = message


class BuilderUnavailable(ReboundError):  # noqa: N818
    """The build pipeline could not be reached, or no build arrived in time.

    The front door answers these with a distinct 503 response.
    """
