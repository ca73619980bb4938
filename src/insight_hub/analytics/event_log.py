"""Bounded in-memory event retention."""

from __future__ import annotations

from collections import deque
from itertools import islice
from typing import Deque, Generic, Iterator, List, TypeVar

T = TypeVar("T")

DEFAULT_RETENTION = 1000


class EventLog(Generic[T]):
    """Append-only log that keeps the most recent ``capacity`` entries.

    Appending past the cap evicts the oldest entry; the retained suffix stays
    in insertion (completion) order. There is deliberately no clear operation.
    """

    def __init__(self, capacity: int = DEFAULT_RETENTION) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be greater than zero")
        self._entries: Deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, event: T) -> None:
        self._entries.append(event)

    def snapshot_recent(self, n: int) -> List[T]:
        """Return up to ``n`` entries, newest first."""

        if n <= 0:
            return []
        return list(islice(reversed(self._entries), n))

    def all(self) -> List[T]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return iter(self.all())
