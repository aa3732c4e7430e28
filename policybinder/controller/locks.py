"""Per-object locking so one identity is never reconciled twice at once."""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List


class KeyedLock:
    """A re-entrant lock per key.

    An entry lives only while some thread holds or waits for it, so the table
    stays bounded by the number of objects currently being reconciled.
    """

    def __init__(self):
        # key -> [lock, holders and waiters]
        self._locks: Dict[Hashable, List] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
