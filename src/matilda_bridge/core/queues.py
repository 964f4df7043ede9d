"""Typed holding queues flushed by a single state transition."""

from collections import deque
from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class PendingQueue(Generic[T]):
    """Ordered holding area for items that cannot be delivered yet.

    Items are released in insertion order by ``drain()``, which empties the
    queue in the same step so nothing is delivered twice.

    Args:
        maxlen: Optional bound; the oldest items are dropped once exceeded

    """

    def __init__(self, maxlen: int | None = None):
        self._items: deque[T] = deque(maxlen=maxlen)
        self.dropped = 0

    def push(self, item: T) -> None:
        if self._items.maxlen is not None and len(self._items) == self._items.maxlen:
            self.dropped += 1
        self._items.append(item)

    def drain(self) -> list[T]:
        items = list(self._items)
        self._items.clear()
        self.dropped = 0
        return items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))
