"""Decoded query string parameters.

The raw query (``ParsedURL.query`` without its ``?``) is split once into
ordered ``(name, value)`` pairs; lookups are case-sensitive.
"""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl

_TRUTHY = frozenset({"1", "on", "true", "yes"})


class QueryParams(Mapping[str, str]):
    """Read-only view of a query string.

    Indexing gives the first value for a name, ``get_list`` every value::

        q = QueryParams("?tag=a&tag=b&page=2")
        q["tag"]            # "a"
        q.get_list("tag")   # ["a", "b"]
        q.get_int("page")   # 2
    """

    __slots__ = ("_pairs", "_raw")

    def __init__(self, query_string: str | bytes = "") -> None:
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        self._raw = query_string.removeprefix("?")
        self._pairs: tuple[tuple[str, str], ...] = tuple(
            parse_qsl(self._raw, keep_blank_values=True)
        )

    def __getitem__(self, key: str) -> str:
        for name, value in self._pairs:
            if name == key:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name for name, _ in self._pairs))

    def __len__(self) -> int:
        return len({name for name, _ in self._pairs})

    def __repr__(self) -> str:
        return f"QueryParams({self._raw!r})"

    @property
    def raw(self) -> str:
        """The query string as received, still percent-encoded."""
        return self._raw

    def get_list(self, key: str) -> list[str]:
        """Every value given for *key*, in order."""
        return [value for name, value in self._pairs if name == key]

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """First value of *key* as an int; *default* if absent or not numeric."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        """First value of *key* read as a flag (``1``, ``on``, ``true``, ``yes``)."""
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in _TRUTHY
