"""Per-key mutual exclusion for in-process callers."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLock:
    """Hand out one lock per key; unrelated keys never contend.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the table only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, waiters + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, waiters = self._locks[key]
                if waiters <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["KeyedLock"]
