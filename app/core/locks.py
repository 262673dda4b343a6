# app/core/locks.py - In-process lock registry for obligations and the ledger
"""
Process-level mutual exclusion used alongside row locks.

PostgreSQL serializes writers with ``SELECT ... FOR UPDATE``; SQLite has no
row locks, so every mutation of a StudentFee or of the ledger also goes
through these locks. Keys are always acquired in sorted order so two batches
sharing obligations cannot deadlock.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Tuple

from app.core.config import settings
from app.core.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class KeyedLockRegistry:
    """
    One re-entrant lock per key, created on demand.

    Each entry counts the threads holding or waiting on it and is dropped
    when the count returns to zero, so the registry only holds keys in use.
    """

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        self._locks: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: float = None) -> Iterator[List[str]]:
        """
        Acquire every key's lock in sorted order, release in reverse.

        Raises:
            ConcurrencyConflict: if any lock cannot be acquired within timeout
        """
        ordered = sorted(set(keys))
        timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        deadline = time.monotonic() + timeout
        acquired: List[Tuple[str, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    self._checkin(key)
                    logger.warning(f"Timed out waiting for {self.name} lock on {key}")
                    raise ConcurrencyConflict(
                        f"Could not lock {self.name} '{key}' within {timeout}s",
                        key=key,
                    )
                acquired.append((key, lock))
            yield ordered
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


# Per-StudentFee locks
obligation_locks = KeyedLockRegistry("student_fee")

# The ledger has a single writer; one key is enough
ledger_locks = KeyedLockRegistry("ledger")
LEDGER_KEY = "ledger"


@contextmanager
def hold_ledger(timeout: float = None):
    with ledger_locks.hold([LEDGER_KEY], timeout=timeout):
        yield
