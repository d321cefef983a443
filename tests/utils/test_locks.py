"""Tests for the per-order lock table."""

import threading

import pytest
from marketplace.utils.locks import KeyedLock


class TestKeyedLock:
    def test_entry_is_dropped_after_release(self):
        locks = KeyedLock()

        with locks.hold("ord-1"):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_hold_is_reentrant(self):
        locks = KeyedLock()

        with locks.hold("ord-1"), locks.hold("ord-1"):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_entry_is_dropped_when_the_body_raises(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError), locks.hold("ord-1"):
            raise RuntimeError("boom")

        assert len(locks) == 0

    def test_table_drains_after_contention(self):
        locks = KeyedLock()
        counter = {"value": 0}
        start = threading.Barrier(8)

        def bump(key):
            start.wait()
            for _ in range(50):
                with locks.hold(key):
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=bump, args=("ord-1" if n % 2 else "ord-2",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(locks) == 0
        assert counter["value"] == 400
