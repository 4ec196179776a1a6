"""Per-request response with send-once semantics.

Handlers set the status and headers, then call ``send`` (or
``send_json``) exactly once. The first send freezes the exchange into
an ``OutgoingResponse`` and marks the response complete; the dispatcher
writes it to the transport as a single final message. A second send is
a programming error and raises ``ResponseAlreadySent``.

Whether a handler sent anything is also how the dispatcher decides to
stop scanning routes: a handler that returns without sending lets the
next matching route run.
"""

import json as json_module
import re
from collections.abc import Mapping
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from waypoint.errors import ResponseAlreadySent

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"

_TOKEN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_FORBIDDEN_IN_VALUE = re.compile(r"[\r\n\x00]")


def _check_header(name: str, value: str) -> None:
    """Reject header text that cannot be written as a single HTTP/1.1 field."""
    if not _TOKEN.fullmatch(name):
        msg = f"Invalid header name: {name!r}"
        raise ValueError(msg)
    if _FORBIDDEN_IN_VALUE.search(value):
        msg = f"Invalid characters in value of header {name!r}"
        raise ValueError(msg)
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        msg = f"Header {name!r} is not latin-1 encodable"
        raise ValueError(msg) from None


@dataclass(frozen=True, slots=True)
class OutgoingResponse:
    """The frozen result of a successful send, ready for the transport."""

    status: int
    content_type: str
    headers: tuple[tuple[str, str], ...]
    body: bytes

    @property
    def text(self) -> str:
        """Body as string."""
        return self.body.decode("utf-8")


class Response:
    """Mutable outbound half of one exchange.

    Usage::

        def show(req, res):
            res.status_code(201)
            res.set_header("Location", "/users/7")
            res.send_json({"id": 7})
    """

    __slots__ = ("_content_type", "_headers", "_outgoing", "_status")

    def __init__(self) -> None:
        self._status: int = 200
        self._content_type: str = DEFAULT_CONTENT_TYPE
        self._headers: list[tuple[str, str]] = []
        self._outgoing: OutgoingResponse | None = None

    def __repr__(self) -> str:
        state = "complete" if self.complete else "pending"
        return f"<Response {self._status} {state}>"

    # -- State --

    @property
    def complete(self) -> bool:
        """True once a send has succeeded."""
        return self._outgoing is not None

    @property
    def outgoing(self) -> OutgoingResponse | None:
        """What was sent, or ``None`` while the response is pending."""
        return self._outgoing

    @property
    def status(self) -> int:
        return self._status

    @property
    def content_type(self) -> str:
        return self._content_type

    @property
    def headers(self) -> list[tuple[str, str]]:
        """Pending extra headers. Mutations after send have no effect."""
        return self._headers

    # -- Setters --

    def status_code(self, status: int | HTTPStatus) -> None:
        """Set the pending status code.

        Raises:
            ValueError: If *status* is not a three-digit code.
        """
        status = int(status)
        if not 100 <= status <= 999:
            msg = f"Invalid HTTP status code: {status}"
            raise ValueError(msg)
        self._status = status

    def set_content_type(self, content_type: str) -> None:
        """Set the pending Content-Type."""
        _check_header("Content-Type", content_type)
        self._content_type = content_type

    def set_header(self, name: str, value: str) -> None:
        """Replace any pending header called *name* (case-insensitive).

        Raises:
            ValueError: If *name* is not a valid field name or *value*
                contains CR, LF or NUL.
        """
        _check_header(name, value)
        lowered = name.lower()
        if lowered == "content-type":
            self._content_type = value
            return
        self._headers = [(n, v) for n, v in self._headers if n.lower() != lowered]
        self._headers.append((name, value))

    def add_header(self, name: str, value: str) -> None:
        """Append a header, keeping earlier ones with the same name."""
        _check_header(name, value)
        self._headers.append((name, value))

    def set_headers(self, headers: Mapping[str, str]) -> None:
        for name, value in headers.items():
            self.set_header(name, value)

    # -- Send --

    def send(self, data: str | bytes = b"") -> None:
        """Complete the response with *data* as the entire body.

        Strings are encoded as UTF-8.

        Raises:
            ResponseAlreadySent: If the response is already complete. The
                first send's status, headers and body are left as they were.
        """
        if self._outgoing is not None:
            raise ResponseAlreadySent()

        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self._outgoing = OutgoingResponse(
            status=self._status,
            content_type=self._content_type,
            headers=tuple(self._headers),
            body=body,
        )

    def send_json(self, value: Any, status: int | HTTPStatus = HTTPStatus.OK) -> None:
        """Serialize *value* as JSON and send it with *status*.

        Raises:
            ResponseAlreadySent: If the response is already complete.
            TypeError: If *value* is not JSON-serializable.
        """
        if self._outgoing is not None:
            raise ResponseAlreadySent()
        payload = json_module.dumps(value)
        self.status_code(status)
        self.set_content_type(JSON_CONTENT_TYPE)
        self.send(payload)
