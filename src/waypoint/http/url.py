"""Request URL decomposition and percent-decoding.

``ParsedURL`` keeps two forms of the path:

- ``base_path``: trailing slashes stripped (``""`` becomes ``/``), still
  percent-encoded.
- ``path``: ``base_path`` run through :func:`url_decode`.

:func:`url_decode` is deliberately not ``urllib.parse.unquote_plus``: it
also understands the legacy ``%uXXXX`` escape, and leaves a ``%`` that
does not start a valid escape untouched.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

DEFAULT_PORTS: Mapping[str, int] = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _is_hex(text: str, length: int) -> bool:
    return len(text) == length and all(c in _HEX_DIGITS for c in text)


def url_decode(value: str) -> str:
    """Decode ``%XX``, ``%uXXXX`` and ``+`` escapes in *value*.

    Consecutive ``%XX`` bytes are collected and decoded together as UTF-8,
    so multi-byte sequences such as ``%C3%A9`` come back as one character.
    Invalid UTF-8 becomes U+FFFD. A ``%`` not followed by two hex digits
    (or ``u`` and four) is kept literally.

    Examples::

        url_decode("%2Fa%20b+c")   -> "/a b c"
        url_decode("caf%C3%A9")    -> "café"
        url_decode("%u00e9t%E9")   -> "ét\\ufffd"
        url_decode("100%")         -> "100%"
    """
    if "%" not in value and "+" not in value:
        return value

    chars: list[str] = []
    pending = bytearray()

    def flush() -> None:
        if pending:
            chars.append(pending.decode("utf-8", errors="replace"))
            pending.clear()

    i = 0
    n = len(value)
    while i < n:
        ch = value[i]
        if ch == "%":
            if value[i + 1 : i + 2] == "u" and _is_hex(value[i + 2 : i + 6], 4):
                flush()
                chars.append(chr(int(value[i + 2 : i + 6], 16)))
                i += 6
                continue
            if _is_hex(value[i + 1 : i + 3], 2):
                pending.append(int(value[i + 1 : i + 3], 16))
                i += 3
                continue
        flush()
        chars.append(" " if ch == "+" else ch)
        i += 1
    flush()

    decoded = "".join(chars)
    if any("\ud800" <= c <= "\udfff" for c in decoded):
        # %uD83D%uDE00 style surrogate pairs -> one code point
        decoded = decoded.encode("utf-16-le", "surrogatepass").decode(
            "utf-16-le", "surrogatepass"
        )
    return decoded


def remove_dot_segments(path: str) -> str:
    """Resolve ``.`` and ``..`` segments (RFC 3986 section 5.2.4)."""
    if "." not in path:
        return path
    output: list[str] = []
    segments = path.split("/")
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == ".":
            if last:
                output.append("")
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            if last:
                output.append("")
            continue
        output.append(segment)
    result = "/".join(output)
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def normalize_path(raw_path: str) -> str:
    """Strip trailing slashes; an empty result becomes ``/``."""
    trimmed = raw_path.rstrip("/")
    return trimmed or "/"


@dataclass(frozen=True, slots=True)
class ParsedURL:
    """A request URI broken into the parts routing cares about.

    ``port`` is ``None`` when the URI does not name one or names the
    scheme's default. ``query`` is raw and keeps its leading ``?``.
    """

    scheme: str
    host: str
    port: int | None
    base_path: str
    path: str
    query: str = ""

    def __str__(self) -> str:
        authority = self.host if self.port is None else f"{self.host}:{self.port}"
        prefix = f"{self.scheme}://{authority}" if self.scheme else ""
        return f"{prefix}{self.base_path}{self.query}"

    @classmethod
    def from_scope(cls, scope: Mapping[str, Any]) -> ParsedURL:
        """Rebuild and parse the request URI from an ASGI HTTP scope.

        Prefers ``raw_path`` (still percent-encoded) over ``path`` and the
        ``Host`` header over the ``server`` address.
        """
        scheme = scope.get("scheme", "http")

        host = ""
        for name, value in scope.get("headers", ()):
            if name.lower() == b"host":
                host = value.decode("latin-1")
                break
        if not host and scope.get("server"):
            server_host, server_port = scope["server"][0], scope["server"][1]
            if ":" in server_host:
                server_host = f"[{server_host}]"
            host = server_host if server_port is None else f"{server_host}:{server_port}"

        raw_path = scope.get("raw_path")
        if raw_path:
            target = raw_path.decode("latin-1")
        else:
            target = scope.get("path", "/")
        # Some servers send the query inside raw_path
        target = target.split("?", 1)[0]
        # asterisk-form (OPTIONS *) names the server, not a resource
        if target == "*":
            target = "/"

        query_string = scope.get("query_string", b"")
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        query = f"?{query_string}" if query_string else ""

        if host:
            return parse_url(f"{scheme}://{host}{target}{query}")
        return parse_url(f"{target}{query}")


def parse_url(raw_uri: str) -> ParsedURL:
    """Parse *raw_uri* (absolute or origin-form) into a :class:`ParsedURL`.

    Raises:
        ValueError: If the URI carries a non-numeric or out-of-range port.
    """
    parts = urlsplit(raw_uri)
    scheme = parts.scheme.lower()
    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) == port:
        port = None

    base_path = normalize_path(remove_dot_segments(parts.path))
    query = f"?{parts.query}" if parts.query else ""

    return ParsedURL(
        scheme=scheme,
        host=parts.hostname or "",
        port=port,
        base_path=base_path,
        path=url_decode(base_path),
        query=query,
    )
