"""
spotter.engine.celebrations — Bounded celebration queue
=========================================================

Newly awarded badges are shown one at a time.  The queue is an immutable
value owned by whoever displays celebrations; every operation returns a
new queue.  When full, the oldest pending celebration is dropped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar

__all__ = ["DEFAULT_MAXSIZE", "CelebrationQueue"]

DEFAULT_MAXSIZE = 10

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CelebrationQueue(Generic[T]):
    """FIFO of pending celebrations, capped at ``maxsize``.

    Usage::

        q = CelebrationQueue(maxsize=3).extend(new_badges)
        current, q = q.dequeue()
    """

    maxsize: int = DEFAULT_MAXSIZE
    items: tuple[T, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {self.maxsize}")
        if len(self.items) > self.maxsize:
            object.__setattr__(self, "items", self.items[-self.maxsize:])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def enqueue(self, item: T) -> CelebrationQueue[T]:
        return CelebrationQueue(self.maxsize, (*self.items, item)[-self.maxsize:])

    def extend(self, items: Iterable[T]) -> CelebrationQueue[T]:
        return CelebrationQueue(self.maxsize, (*self.items, *items)[-self.maxsize:])

    def peek(self) -> T | None:
        return self.items[0] if self.items else None

    def dequeue(self) -> tuple[T | None, CelebrationQueue[T]]:
        if not self.items:
            return None, self
        return self.items[0], CelebrationQueue(self.maxsize, self.items[1:])
