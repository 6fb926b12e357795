"""Ledger storage backends."""

from __future__ import annotations

from task_ledger.config.settings import Settings
from task_ledger.storage.base import DocumentLedgerStore, LedgerStore
from task_ledger.storage.json_file import JsonFileLedgerStore
from task_ledger.storage.memory import InMemoryLedgerStore
from task_ledger.storage.postgres import PostgresLedgerStore


def build_store(settings: Settings) -> LedgerStore:
    """Construct the backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return InMemoryLedgerStore(lock_timeout_s=settings.lock_timeout_s)
    if settings.storage_backend == "postgres":
        database_url = settings.resolved_database_url()
        if not database_url:
            raise RuntimeError(
                "Missing database URL. Set TASK_LEDGER_DATABASE_URL "
                "or DATABASE_URL before using the postgres backend."
            )
        return PostgresLedgerStore(database_url, lock_timeout_s=settings.lock_timeout_s)
    return JsonFileLedgerStore(settings.data_dir, lock_timeout_s=settings.lock_timeout_s)


__all__ = [
    "DocumentLedgerStore",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerStore",
    "PostgresLedgerStore",
    "build_store",
]
