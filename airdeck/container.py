"""Selectable, ordered list used by every panel."""

from __future__ import annotations

from typing import Any, Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


class StatefulContainer(Generic[T]):
    """An ordered sequence of rows plus the key of the selected row.

    Rows must expose a stable ``key`` attribute. Selection is stored by key,
    not by index, so that a refresh which reorders or filters rows keeps the
    cursor on the same row.
    """

    def __init__(self, items: Iterable[T] = ()):
        self.items: list[T] = list(items)
        self.selected_key: Any = self.items[0].key if self.items else None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __repr__(self) -> str:
        return f"StatefulContainer({len(self.items)} items, selected={self.selected_key!r})"

    def _index_of(self, key: Any) -> int | None:
        for index, item in enumerate(self.items):
            if item.key == key:
                return index
        return None

    def set_items(self, items: Iterable[T]) -> None:
        """Replace the rows, keeping the selection on the same key if it survives."""
        self.items = list(items)
        if self.selected_key is not None and self._index_of(self.selected_key) is not None:
            return
        self.selected_key = self.items[0].key if self.items else None

    def selected(self) -> T | None:
        index = self.selected_index()
        return None if index is None else self.items[index]

    def selected_index(self) -> int | None:
        if self.selected_key is None:
            return None
        return self._index_of(self.selected_key)

    def select_key(self, key: Any) -> bool:
        if self._index_of(key) is None:
            return False
        self.selected_key = key
        return True

    def select_index(self, index: int) -> None:
        if not self.items:
            self.selected_key = None
            return
        index = max(0, min(len(self.items) - 1, index))
        self.selected_key = self.items[index].key

    def select_next(self) -> None:
        index = self.selected_index()
        self.select_index(0 if index is None else index + 1)

    def select_previous(self) -> None:
        index = self.selected_index()
        self.select_index(0 if index is None else index - 1)

    def select_first(self) -> None:
        self.select_index(0)

    def select_last(self) -> None:
        self.select_index(len(self.items) - 1)
