"""Per-request context handed to route handlers.

Metadata is read from the ASGI scope once. ``keys`` is the only field the
dispatcher rewrites: it holds the parameters of the route currently
running. The body is read lazily from the ASGI receive channel.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any, TypeVar

from waypoint._internal.asgi import Receive, Scope
from waypoint.http.headers import Headers
from waypoint.http.query import QueryParams
from waypoint.http.url import ParsedURL

T = TypeVar("T")


@dataclass(slots=True)
class Request:
    """An inbound HTTP request.

    ``keys`` is empty until a route matches; afterwards it maps each
    ``:name`` of the matched template to the captured path segment.
    """

    method: str
    url: ParsedURL
    headers: Headers
    query: QueryParams
    keys: dict[str, str] = field(default_factory=dict)
    http_version: str = "1.1"
    client: tuple[str, int] | None = None

    # ASGI receive callable for body streaming
    _receive: Receive | None = field(default=None, repr=False, compare=False)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def path(self) -> str:
        """Decoded, normalized request path (the routing subject)."""
        return self.url.path

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        The receive channel is consumed once; later calls, including calls
        from handlers further down the route table, get the cached bytes.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        if self._receive is None:
            return
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                break
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    async def json(self) -> Any:
        """Parse the body as JSON."""
        raw = await self.body()
        return json_module.loads(raw)

    async def deserialize_json(self, into: type[T]) -> T:
        """Parse the body as a JSON object and build an *into* dataclass from it.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON.
            TypeError: If the body is not an object or *into* is not a dataclass.
        """
        from waypoint.extraction import extract_dataclass

        return extract_dataclass(into, await self.json())

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive | None = None) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            url=ParsedURL.from_scope(scope),
            headers=Headers(scope.get("headers", ())),
            query=QueryParams(scope.get("query_string", b"")),
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
            _receive=receive,
        )
