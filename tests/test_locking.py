"""Tests for per-key locks."""

import threading
import time

from beaconhub.locking import KeyedLock, device_key, nickname_key


class TestKeyedLock:
    def test_entries_released_after_use(self):
        locks = KeyedLock()
        with locks.hold(nickname_key("alice"), device_key("D1")):
            assert len(locks) == 2
        assert len(locks) == 0

    def test_duplicate_keys_acquired_once(self):
        locks = KeyedLock()
        # Would deadlock if the same non-reentrant lock were taken twice
        with locks.hold(nickname_key("alice"), nickname_key("alice")):
            assert len(locks) == 1

    def test_same_key_is_mutually_exclusive(self):
        locks = KeyedLock()
        inside = 0
        overlap = []

        def worker() -> None:
            nonlocal inside
            with locks.hold(nickname_key("alice")):
                inside += 1
                overlap.append(inside)
                time.sleep(0.01)
                inside -= 1

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == [1] * 8
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other() -> None:
            with locks.hold(nickname_key("bob")):
                entered.set()

        with locks.hold(nickname_key("alice")):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=2)
            t.join()

    def test_overlapping_sets_in_opposite_order_do_not_deadlock(self):
        locks = KeyedLock()
        done = []

        def forward() -> None:
            for _ in range(50):
                with locks.hold(device_key("D1"), nickname_key("alice")):
                    pass
            done.append("forward")

        def backward() -> None:
            for _ in range(50):
                with locks.hold(nickname_key("alice"), device_key("D1")):
                    pass
            done.append("backward")

        threads = [threading.Thread(target=forward), threading.Thread(target=backward)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert sorted(done) == ["backward", "forward"]
