from __future__ import annotations

import asyncio
import threading
from contextlib import contextmanager


class SessionLocks:
    """Per-session locks.

    `hold(code)` is a `threading.Lock` around registry load/transition/store, so
    two sessions never block each other. `for_fanout(code)` is an `asyncio.Lock`
    the transport holds across "mutate + broadcast" to keep push order equal to
    mutation order.

    Locks are kept after a session is removed: a thread already queued on a
    code's lock and any later caller for the same code must contend on one lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._async_locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, code: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(code)
            if lock is None:
                lock = threading.Lock()
                self._locks[code] = lock
            return lock

    @contextmanager
    def hold(self, code: str):
        lock = self._lock_for(code)
        with lock:
            yield

    def for_fanout(self, code: str) -> asyncio.Lock:
        # Only touched from the event loop thread.
        lock = self._async_locks.get(code)
        if lock is None:
            lock = asyncio.Lock()
            self._async_locks[code] = lock
        return lock
