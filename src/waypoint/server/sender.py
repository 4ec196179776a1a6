"""ASGI response sending: writes a completed response to the transport.

Every response is one ``http.response.start`` followed by one final
``http.response.body``. There is no streaming path.
"""

from waypoint._internal.asgi import Send
from waypoint.http.response import OutgoingResponse


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


async def send_response(response: OutgoingResponse, send: Send) -> None:
    """Translate a completed response into ASGI send() calls."""
    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", response.content_type.encode("latin-1")),
    ]
    for name, value in response.headers:
        lowered = name.lower()
        if lowered in ("content-type", "content-length"):
            continue
        raw_headers.append((lowered.encode("latin-1"), value.encode("latin-1")))

    body = response.body if _body_allowed(response.status) else b""

    # 1xx and 204 must not carry Content-Length
    if not (100 <= response.status < 200 or response.status == 204):
        raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
            "more_body": False,
        }
    )
