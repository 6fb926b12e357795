"""In-memory ledger backend for tests and single-process embedding."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from task_ledger.models import Ledger
from task_ledger.storage.base import DocumentLedgerStore
from task_ledger.storage.locks import KeyedLocks


class _MemorySession:
    def __init__(self, store: InMemoryLedgerStore, task_id: str) -> None:
        self._store = store
        self._task_id = task_id

    def load(self) -> Ledger | None:
        return self._store._get(self._task_id)

    def save(self, ledger: Ledger) -> None:
        with self._store._index_lock:
            self._store._ledgers[self._task_id] = ledger.model_copy(deep=True)


class InMemoryLedgerStore(DocumentLedgerStore):
    """Dict-backed store; not durable across process restarts."""

    def __init__(self, *, lock_timeout_s: float = 5.0) -> None:
        self.lock_timeout_s = lock_timeout_s
        self._ledgers: dict[str, Ledger] = {}
        self._locks = KeyedLocks()
        # Guards the dict itself; per-task serialization comes from _locks.
        self._index_lock = threading.Lock()

    def list_tasks(self) -> list[str]:
        with self._index_lock:
            return sorted(self._ledgers)

    @contextmanager
    def _session(self, task_id: str) -> Iterator[_MemorySession]:
        with self._locks.hold(task_id, timeout_s=self.lock_timeout_s):
            yield _MemorySession(self, task_id)

    def _snapshot(self, task_id: str) -> Ledger | None:
        with self._locks.hold(task_id, timeout_s=self.lock_timeout_s):
            return self._get(task_id)

    def _get(self, task_id: str) -> Ledger | None:
        with self._index_lock:
            ledger = self._ledgers.get(task_id)
        return ledger.model_copy(deep=True) if ledger else None
