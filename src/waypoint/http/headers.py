"""Case-insensitive request header lookup.

Headers arrive as raw latin-1 byte pairs (ASGI scope, h11 events). They
are indexed by lower-cased name once, when the view is built.
"""

from collections.abc import Iterable, Iterator, Mapping


class Headers(Mapping[str, str]):
    """Read-only header view keyed by lower-cased name.

    ``headers["Accept"]`` is the first ``Accept`` line; ``get_list`` returns
    all of them. ``raw`` keeps the original pairs, in arrival order.
    """

    __slots__ = ("_by_name", "_raw")

    def __init__(self, raw: Iterable[tuple[bytes, bytes]] = ()) -> None:
        self._raw = tuple((bytes(name), bytes(value)) for name, value in raw)
        by_name: dict[str, list[str]] = {}
        for name, value in self._raw:
            by_name.setdefault(name.decode("latin-1").lower(), []).append(
                value.decode("latin-1")
            )
        self._by_name = by_name

    def __getitem__(self, key: str) -> str:
        return self._by_name[key.lower()][0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._by_name

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"Headers({self._raw!r})"

    def get_list(self, key: str) -> list[str]:
        """Every value sent for *key*; empty when absent."""
        return list(self._by_name.get(key.lower(), ()))

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        return self._raw
