"""
spotter.services.locks — Per-user serialization
=================================================

Events for the same member must be processed one at a time; events for
different members may run in parallel.  :class:`UserLocks` hands out one
``threading.Lock`` per member and forgets it again once nobody holds or
waits for it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

logger = logging.getLogger(__name__)


class UserLocks:
    """Registry of per-user locks.

    Thread-safe.  Entries are reference-counted so idle members do not
    accumulate.

    Usage::

        locks = UserLocks()
        with locks.hold(user_id):
            ...  # read-modify-write of this member's derived state
    """

    def __init__(self) -> None:
        self._lock = Lock()
        # user_id → [lock, holders + waiters]
        self._entries: dict[int, list] = {}

    @contextmanager
    def hold(self, user_id: int) -> Iterator[None]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                entry = self._entries[user_id] = [Lock(), 0]
            entry[1] += 1

        user_lock: Lock = entry[0]
        user_lock.acquire()
        try:
            yield
        finally:
            user_lock.release()
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[user_id]

    def __len__(self) -> int:
        """Number of members currently holding or waiting for a lock."""
        with self._lock:
            return len(self._entries)
