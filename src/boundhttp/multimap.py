"""Ordered multi-value mapping used for request parameters and headers."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping


class NamedMultiValueMap:
    """Maps a name to an ordered, non-empty list of values.

    Names keep their first insertion order. Removing the last value of a name
    removes the name itself. Accessors hand out immutable copies.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._values_by_name: dict[str, list[str]] = {}
        for name, value in pairs:
            self.append(name, value)

    def append(self, name: str, value: str) -> None:
        self._values_by_name.setdefault(name, []).append(value)

    def prepend(self, name: str, value: str) -> None:
        self._values_by_name.setdefault(name, []).insert(0, value)

    def extend(self, pairs: Iterable[tuple[str, str]]) -> None:
        for name, value in pairs:
            self.append(name, value)

    def extend_front(self, pairs: Iterable[tuple[str, str]]) -> None:
        """Prepends ``pairs`` keeping their relative order for each name."""
        for name, value in reversed(list(pairs)):
            self.prepend(name, value)

    def get_all(self, name: str) -> tuple[str, ...]:
        return tuple(self._values_by_name.get(name, ()))

    def get_first(self, name: str, throw_if_many: bool = False) -> str | None:
        values = self._values_by_name.get(name)
        if not values:
            return None
        if throw_if_many and len(values) > 1:
            raise LookupError(
                f"Expected only one value with name '{name}' but {len(values)} have been found."
            )
        return values[0]

    def remove_at(self, name: str, index: int) -> None:
        values = self._values_by_name[name]
        del values[index]
        if not values:
            del self._values_by_name[name]

    def remove_first(self, name: str) -> None:
        self.remove_at(name, 0)

    def remove_last(self, name: str) -> None:
        self.remove_at(name, -1)

    def remove_all(self, name: str) -> None:
        self._values_by_name.pop(name, None)

    def clear(self) -> None:
        self._values_by_name.clear()

    def pairs(self) -> Iterator[tuple[str, str]]:
        """Yields ``(name, value)`` pairs, one per value, in map order."""
        for name, values in self._values_by_name.items():
            for value in values:
                yield name, value

    def snapshot(self) -> Mapping[str, tuple[str, ...]]:
        return MappingProxyType({name: tuple(values) for name, values in self._values_by_name.items()})

    def copy(self) -> NamedMultiValueMap:
        return NamedMultiValueMap(self.pairs())

    def __contains__(self, name: object) -> bool:
        return name in self._values_by_name

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values_by_name))

    def __len__(self) -> int:
        return len(self._values_by_name)

    def __bool__(self) -> bool:
        return bool(self._values_by_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NamedMultiValueMap):
            return NotImplemented
        return self._values_by_name == other._values_by_name

    def __repr__(self) -> str:
        return f"NamedMultiValueMap({list(self.pairs())!r})"
