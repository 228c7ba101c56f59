"""An insertion-ordered set of operand names."""

from __future__ import annotations

__all__ = ("OrderedNameSet", "difference", "union")

from collections.abc import Iterable, Iterator


class OrderedNameSet:
    """A set of strings that iterates in insertion order.

    Parameters
    ----------
    names : iterable of `str`, optional
        Initial members. Duplicates keep their first position.
    """

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._items: dict[str, None] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        self._items.setdefault(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrderedNameSet):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"OrderedNameSet({list(self)!r})"


def union(first: OrderedNameSet, second: OrderedNameSet) -> OrderedNameSet:
    """Members of either set, ``first``'s order followed by new members of
    ``second``.
    """
    return OrderedNameSet([*first, *second])


def difference(
    first: OrderedNameSet, second: OrderedNameSet
) -> OrderedNameSet:
    """Members of ``first`` that are not in ``second``, in ``first``'s
    order.
    """
    return OrderedNameSet(name for name in first if name not in second)
