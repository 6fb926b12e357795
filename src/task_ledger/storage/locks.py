"""Per-key locks so one task's writers never wait on another task."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from task_ledger.errors import StorageError


class KeyedLocks:
    """Lazily created ``threading.Lock`` per key, acquired with a bounded wait."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str, *, timeout_s: float) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(timeout=timeout_s):
            raise StorageError(
                f"Timed out after {timeout_s:.2f}s waiting for ledger lock task_id={key}"
            )
        try:
            yield
        finally:
            lock.release()
