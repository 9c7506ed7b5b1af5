"""Fixed error responses and terminal logging for unhandled exceptions.

Nothing from an exception ever reaches the client: the front door answers
with one of the fixed bodies below and the detail goes to the log.

Traceback verbosity for logged exceptions is controlled by the
``REBOUND_TRACEBACK`` environment variable: ``full`` (default), ``compact``
(app frames only) or ``minimal``.
"""

from __future__ import annotations

import logging
import os
import traceback as _traceback
from typing import TYPE_CHECKING

from rebound.errors import HTTPError
from rebound.http.response import Response

if TYPE_CHECKING:
    from rebound.http.request import Request

logger = logging.getLogger("rebound.server")

BUILD_ERROR_MESSAGE = "Could not build your app. Check your terminal for more information."
INTERNAL_ERROR_MESSAGE = "Internal server error"
BUILDER_UNAVAILABLE_MESSAGE = "Builder unavailable"


def internal_error_response() -> Response:
    """Generic 500 for any exception escaping a handler or middleware."""
    return Response(INTERNAL_ERROR_MESSAGE, status=500)


def http_error_response(exc: HTTPError) -> Response:
    """Response for an ``HTTPError`` a handler raised on purpose."""
    return Response(exc.detail or str(exc.status), status=exc.status)


def builder_unavailable_response() -> Response:
    """503 for a builder that could not be reached or never produced a build."""
    return Response(BUILDER_UNAVAILABLE_MESSAGE, status=503).with_header("Retry-After", "1")


def _is_app_frame(filename: str) -> bool:
    """True if the frame is from the application (not stdlib/site-packages)."""
    if "site-packages" in filename:
        return False
    if filename.startswith("<"):
        return False
    stdlib_prefix = os.path.dirname(os.__file__)
    return not filename.startswith(stdlib_prefix)


def format_compact_traceback(exc: BaseException) -> str:
    """Format *exc* with application frames only.

    Falls back to the last three frames when none of them belong to the
    application.
    """
    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    app_frames = [f for f in frames if _is_app_frame(f.filename)]
    display_frames = app_frames if app_frames else frames[-3:]

    parts = [f"{type(exc).__name__}: {exc}"]
    if display_frames:
        parts.append("  Trace (app frames):")
        for frame in display_frames[-5:]:
            parts.append(f"    {frame.filename}:{frame.lineno} in {frame.name}")
            if frame.line:
                parts.append(f"      {frame.line.strip()}")
    return "\n".join(parts)


def format_minimal_error(exc: BaseException) -> str:
    """One-line error summary."""
    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    last = frames[-1] if frames else None
    location = f" at {last.filename}:{last.lineno}" if last else ""
    return f"{type(exc).__name__}{location}: {exc}"


def log_error(exc: BaseException, request: Request | None = None) -> None:
    """Log an unhandled exception with the configured verbosity."""
    prefix = (
        f"Unhandled exception: {request.method} {request.path}"
        if request is not None
        else "Unhandled exception"
    )

    traceback_style = os.environ.get("REBOUND_TRACEBACK", "full").lower()

    if traceback_style == "compact":
        logger.error("%s\n%s", prefix, format_compact_traceback(exc))
    elif traceback_style == "minimal":
        logger.error("%s - %s", prefix, format_minimal_error(exc))
    else:
        logger.error(prefix, exc_info=exc)
