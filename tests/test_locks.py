"""
tests/test_locks.py — Per-user Lock Registry Tests
====================================================
"""

from __future__ import annotations

import threading
import time

from spotter.services.locks import UserLocks


class TestUserLocks:
    def test_entries_forgotten_when_idle(self):
        locks = UserLocks()
        with locks.hold(1):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_same_user_serialized(self):
        locks = UserLocks()
        active = 0
        max_active = 0
        guard = threading.Lock()

        def worker():
            nonlocal active, max_active
            with locks.hold(42):
                with guard:
                    active += 1
                    max_active = max(max_active, active)
                time.sleep(0.01)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert max_active == 1
        assert len(locks) == 0

    def test_different_users_do_not_block(self):
        locks = UserLocks()
        entered = threading.Event()

        def other():
            with locks.hold(2):
                entered.set()

        with locks.hold(1):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=1.0)
            t.join()

    def test_released_on_exception(self):
        locks = UserLocks()
        try:
            with locks.hold(1):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        with locks.hold(1):
            pass
        assert len(locks) == 0
