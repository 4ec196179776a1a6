"""Error handling for failed dispatches.

Maps handler exceptions to the response the client receives and logs
them in a compact, application-focused form.

Traceback verbosity for unexpected errors is controlled by the
``WAYPOINT_TRACEBACK`` environment variable:

- ``compact`` (default): application frames plus the error summary
- ``full``: the standard ``logger.exception`` traceback
- ``minimal``: one line with the raising location
"""

from __future__ import annotations

import logging
import os
import traceback as _traceback
from typing import TYPE_CHECKING

from waypoint.errors import HTTPError
from waypoint.http.response import DEFAULT_CONTENT_TYPE, OutgoingResponse

if TYPE_CHECKING:
    from waypoint.http.request import Request

logger = logging.getLogger("waypoint.server")

NOT_FOUND_BODY = b"Not found"
BAD_REQUEST_BODY = b"Bad Request"
INTERNAL_ERROR_BODY = b"Internal Server Error"


def not_found_response() -> OutgoingResponse:
    """The fallback sent when no route completes a request."""
    return OutgoingResponse(
        status=404,
        content_type=DEFAULT_CONTENT_TYPE,
        headers=(),
        body=NOT_FOUND_BODY,
    )


def bad_request_response() -> OutgoingResponse:
    """Sent when the request URI cannot be parsed (a bad Host port, for one)."""
    return OutgoingResponse(
        status=400,
        content_type=DEFAULT_CONTENT_TYPE,
        headers=(),
        body=BAD_REQUEST_BODY,
    )


def http_error_response(exc: HTTPError) -> OutgoingResponse:
    """Map an ``HTTPError`` raised by a handler to its response."""
    detail = exc.detail or f"Error {exc.status}"
    return OutgoingResponse(
        status=exc.status,
        content_type=DEFAULT_CONTENT_TYPE,
        headers=exc.headers,
        body=detail.encode("utf-8"),
    )


def internal_error_response(exc: Exception, *, debug: bool = False) -> OutgoingResponse:
    """A 500 for an unexpected handler failure.

    In debug mode the body carries the compact traceback.
    """
    body = INTERNAL_ERROR_BODY
    if debug:
        body = body + b"\n\n" + format_compact_traceback(exc).encode("utf-8")
    return OutgoingResponse(
        status=500,
        content_type=DEFAULT_CONTENT_TYPE,
        headers=(),
        body=body,
    )


def _is_app_frame(filename: str) -> bool:
    """True if the frame is from the application (not stdlib/site-packages/waypoint)."""
    if "site-packages" in filename or filename.startswith("<"):
        return False
    if os.sep + "waypoint" + os.sep in filename:
        return False
    stdlib_prefix = os.path.dirname(os.__file__)
    return not filename.startswith(stdlib_prefix)


def format_compact_traceback(exc: BaseException) -> str:
    """Format an error with application frames only.

    Falls back to the last three frames when none belong to the
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
    """Log a handler failure using the configured traceback style."""
    prefix = f"500 {request.method} {request.path}" if request is not None else "Server error"
    style = os.environ.get("WAYPOINT_TRACEBACK", "compact").lower()

    if style == "full":
        logger.error(prefix, exc_info=exc)
    elif style == "minimal":
        logger.error("%s: %s", prefix, format_minimal_error(exc))
    else:
        logger.error("%s\n%s", prefix, format_compact_traceback(exc))
