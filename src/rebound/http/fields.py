"""Ordered multi-valued string mappings for request metadata.

Header and query values are decoded once, when the request is built.
A ``Request`` handed to a sandbox thread then carries nothing but plain
strings.
"""

from collections.abc import Iterable, Iterator, Mapping
from urllib.parse import parse_qsl


class FieldMap(Mapping[str, str]):
    """Immutable ``name -> value`` mapping that keeps repeated names.

    Lookup returns the first value; ``get_list`` returns all of them in
    arrival order.
    """

    __slots__ = ("_index", "_items")

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._items = tuple(items)
        index: dict[str, list[str]] = {}
        for name, value in self._items:
            index.setdefault(self._key(name), []).append(value)
        self._index = index

    @staticmethod
    def _key(name: str) -> str:
        return name

    def __getitem__(self, name: str) -> str:
        return self._index[self._key(name)][0]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._items)!r})"

    def get_list(self, name: str) -> list[str]:
        """All values for *name*, empty when absent."""
        return list(self._index.get(self._key(name), ()))

    def multi_items(self) -> list[tuple[str, str]]:
        """Every ``(name, value)`` pair, repeats included."""
        return list(self._items)


class Headers(FieldMap):
    """Case-insensitive HTTP headers. Names iterate lowercased."""

    __slots__ = ()

    @staticmethod
    def _key(name: str) -> str:
        return name.lower()

    @classmethod
    def from_asgi(cls, raw: Iterable[tuple[bytes, bytes]]) -> "Headers":
        """Decode ASGI header byte pairs (latin-1, per HTTP/1.1)."""
        return cls((name.decode("latin-1"), value.decode("latin-1")) for name, value in raw)

    @classmethod
    def from_mapping(cls, headers: Mapping[str, str] | None) -> "Headers":
        """Build headers from a plain ``{name: value}`` mapping."""
        return cls((headers or {}).items())


class QueryParams(FieldMap):
    """Parsed query string parameters. Blank values are kept."""

    __slots__ = ()

    @classmethod
    def parse(cls, query_string: str) -> "QueryParams":
        return cls(parse_qsl(query_string, keep_blank_values=True))
