"""
tests/test_celebrations.py — Celebration Queue Unit Tests
===========================================================
"""

from __future__ import annotations

import pytest

from spotter.engine.celebrations import CelebrationQueue


class TestCelebrationQueue:
    def test_fifo(self):
        q = CelebrationQueue().extend(["a", "b", "c"])
        first, q = q.dequeue()
        second, q = q.dequeue()
        assert (first, second) == ("a", "b")
        assert q.peek() == "c"
        assert len(q) == 1

    def test_immutable(self):
        empty = CelebrationQueue()
        one = empty.enqueue("a")
        assert len(empty) == 0
        assert len(one) == 1

    def test_drops_oldest_when_full(self):
        q = CelebrationQueue(maxsize=3)
        for item in range(5):
            q = q.enqueue(item)
        assert list(q) == [2, 3, 4]

    def test_default_capacity_is_ten(self):
        q = CelebrationQueue().extend(range(25))
        assert len(q) == 10
        assert q.peek() == 15

    def test_dequeue_empty(self):
        item, q = CelebrationQueue().dequeue()
        assert item is None
        assert len(q) == 0

    def test_oversized_initial_items_trimmed(self):
        q = CelebrationQueue(maxsize=2, items=("a", "b", "c"))
        assert list(q) == ["b", "c"]

    def test_invalid_maxsize(self):
        with pytest.raises(ValueError):
            CelebrationQueue(maxsize=0)
