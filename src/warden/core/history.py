"""Bounded, append-only history buffer.

Every in-memory history of an agent (experiences, repair batches, KPI
window, violation log, quarantine, ...) is a ``BoundedHistory``: once the
capacity is reached the oldest entry is evicted.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    """Ring buffer with list-like read access."""

    def __init__(self, maxlen: int, items: Iterable[T] = ()) -> None:
        if maxlen < 1:
            raise ValueError(f"maxlen must be >= 1, got {maxlen}")
        self._items: deque[T] = deque(items, maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._items.maxlen or 0

    def append(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def latest(self, n: int = 1) -> list[T]:
        """The last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        return list(self._items)[-n:]

    def last(self) -> T | None:
        return self._items[-1] if self._items else None

    def replace_last(self, item: T) -> None:
        """Overwrite the newest entry; appends when empty."""
        if self._items:
            self._items[-1] = item
        else:
            self._items.append(item)

    def snapshot(self) -> list[T]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"BoundedHistory(len={len(self._items)}, maxlen={self.maxlen})"
