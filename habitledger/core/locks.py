"""Per-key mutual exclusion for obligation- and pair-scoped mutations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, Iterator


class KeyedLocks:
    """One re-entrant lock per key; keys are created lazily under a guard lock."""

    def __init__(self):
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._lock = threading.Lock()

    def _get(self, key: Hashable) -> threading.RLock:
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._get(key)
        with lock:
            yield

    @contextmanager
    def hold_all(self, keys: Iterable[Hashable]) -> Iterator[None]:
        # Sorted acquisition keeps multi-key holders deadlock free.
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self._get(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)


def pair_key(user_a: str, user_b: str) -> tuple:
    """Unordered user pair, normalized so {a, b} and {b, a} share a lock."""
    return tuple(sorted((user_a, user_b)))
