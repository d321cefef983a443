"""In-process locks guarding the datastore and individual orders.

The memory provider has no conditional update, so every read-check-write
against a repository runs under ``datastore_lock``. ``order_locks`` hands
out one lock per order id and is held across load, gateway verification
and commit of a status transition.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

datastore_lock = threading.RLock()


class KeyedLock:
    """A family of reentrant locks addressed by key.

    Entries are reference counted and dropped once nobody holds or waits
    on them, so the table only grows with concurrently active keys.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


order_locks = KeyedLock()
