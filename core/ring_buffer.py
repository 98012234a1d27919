"""
Core Module - Ring Buffer.

Fixed-capacity FIFO history used for response times, recovery
attempts and audit events. Appending past capacity evicts the
oldest entry.
"""

from collections import deque
from typing import Callable, Deque, Generic, Iterator, List, Optional, TypeVar


T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Bounded FIFO buffer backed by ``collections.deque``."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self._items) == self._capacity

    def append(self, item: T) -> Optional[T]:
        """Append an item, returning the evicted oldest item if any."""
        evicted = self._items[0] if self.is_full else None
        self._items.append(item)
        return evicted

    def latest(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def snapshot(self) -> List[T]:
        """Copy of the contents, oldest first."""
        return list(self._items)

    def recent(self, limit: Optional[int] = None) -> List[T]:
        """Newest-first copy, optionally limited."""
        items = list(reversed(self._items))
        if limit is not None:
            items = items[:limit]
        return items

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items if predicate(item)]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __repr__(self) -> str:
        return f"RingBuffer(size={len(self._items)}, capacity={self._capacity})"
