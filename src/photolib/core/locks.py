"""Per-key mutual exclusion.

Uploads to the same photo id must not interleave: without serialisation an
original from one request could end up paired with a thumbnail from another.
:class:`KeyedLock` hands out one ``threading.Lock`` per key, so uploads to
different photos still run in parallel.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """A collection of locks addressed by key.

    Entries are reference-counted and dropped once no thread holds or waits
    on them, so the table does not grow with the number of photos ever seen.

    Example::

        locks = KeyedLock()
        with locks.hold(photo_id):
            ...
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Block until the lock for ``key`` is acquired, release on exit."""
        lock = self._checkout(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._checkin(key)

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)
