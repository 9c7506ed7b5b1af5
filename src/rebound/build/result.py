"""Build results and their wire encoding.

``built_at_ms`` strictly increases across builds of one bundler and is the
only thing the serving side compares to decide whether its cached handler
is still valid.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class BuildSuccess:
    """A build that produced a loadable bundle at *bundle_path*."""

    bundle_path: str
    built_at_ms: int

    @property
    def type(self) -> str:
        return "success"


@dataclass(frozen=True, slots=True)
class BuildFailure:
    """A build attempt that failed. Data, not an exception."""

    built_at_ms: int
    message: str = ""

    @property
    def type(self) -> str:
        return "failure"


type BuildResult = BuildSuccess | BuildFailure


def to_wire(result: BuildResult) -> dict[str, Any]:
    """Encode *result* as a JSON-compatible dict."""
    if isinstance(result, BuildSuccess):
        return {
            "type": "success",
            "bundle_path": result.bundle_path,
            "built_at_ms": result.built_at_ms,
        }
    return {"type": "failure", "built_at_ms": result.built_at_ms, "message": result.message}


def from_wire(payload: dict[str, Any]) -> BuildResult:
    """Decode a dict produced by ``to_wire``.

    Raises ``ValueError`` for an unknown ``type`` tag.
    """
    kind = payload.get("type")
    if kind == "success":
        return BuildSuccess(
            bundle_path=payload["bundle_path"],
            built_at_ms=int(payload["built_at_ms"]),
        )
    if kind == "failure":
        return BuildFailure(
            built_at_ms=int(payload["built_at_ms"]),
            message=payload.get("message", ""),
        )
    msg = f"Unknown build result type {kind!r}"
    raise ValueError(msg)
