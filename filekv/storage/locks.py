"""
FILEKV - Per-Key Locks

Serializes operations on the same key so an existence check and the
action that depends on it can't interleave with another thread.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyLockTable:
    """
    Table of mutexes keyed by record key.

    Entries are reference counted and dropped once no thread holds or
    waits on them, so the table never grows past the number of keys in use.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, List] = {}  # key -> [Lock, refcount]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the with-block.

        Args:
            key: Record key to serialize on
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
