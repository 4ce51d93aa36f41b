import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLocks:
    """Hands out one lock per key, e.g. per event id or per user id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = defaultdict(threading.RLock)

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            return self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield
