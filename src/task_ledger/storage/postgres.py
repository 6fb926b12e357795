"""PostgreSQL-backed ledger storage with automatic table migration.

Each ledger is one JSONB document row. Writers for the same task are
serialized across processes with a transaction-scoped advisory lock keyed on
the task id; ``lock_timeout`` bounds the wait. Reads use a plain MVCC
snapshot and never wait on writers.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError

from task_ledger.errors import StorageError
from task_ledger.models import Ledger
from task_ledger.storage.base import DocumentLedgerStore


class _PostgresSession:
    def __init__(self, conn: Any, task_id: str, json_wrapper: Any) -> None:
        self._conn = conn
        self._task_id = task_id
        self._json_wrapper = json_wrapper

    def load(self) -> Ledger | None:
        row = self._conn.execute(
            "SELECT document FROM ledgers WHERE task_id = %s FOR UPDATE",
            (self._task_id,),
        ).fetchone()
        if row is None:
            return None
        return _parse_document(row["document"], self._task_id)

    def save(self, ledger: Ledger) -> None:
        self._conn.execute(
            """
            INSERT INTO ledgers (task_id, state, version, document, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (task_id) DO UPDATE
            SET state = EXCLUDED.state,
                version = EXCLUDED.version,
                document = EXCLUDED.document,
                updated_at = EXCLUDED.updated_at
            """,
            (
                ledger.task_id,
                ledger.state.value,
                ledger.version,
                self._json_wrapper(ledger.model_dump(mode="json")),
                ledger.created_at,
                ledger.updated_at,
            ),
        )


class PostgresLedgerStore(DocumentLedgerStore):
    """Persist ledgers in PostgreSQL."""

    def __init__(self, database_url: str, *, lock_timeout_s: float = 5.0) -> None:
        if not database_url:
            raise ValueError("TASK_LEDGER_DATABASE_URL is required")
        self.database_url = database_url
        self.lock_timeout_s = lock_timeout_s
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledgers (
                    task_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    version BIGINT NOT NULL DEFAULT 0,
                    document JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ledgers_state
                ON ledgers(state)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ledgers_updated_at
                ON ledgers(updated_at DESC)
                """)

    def list_tasks(self) -> list[str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT task_id FROM ledgers ORDER BY task_id").fetchall()
        return [str(row["task_id"]) for row in rows]

    @contextmanager
    def _session(self, task_id: str) -> Iterator[_PostgresSession]:
        with self._connection() as conn:
            conn.execute(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_s * 1000)}ms'")
            conn.execute("SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))", (task_id,))
            yield _PostgresSession(conn, task_id, self._json_wrapper)

    def _snapshot(self, task_id: str) -> Ledger | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM ledgers WHERE task_id = %s",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return _parse_document(row["document"], task_id)

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        # psycopg commits on clean exit and rolls back when the block raises,
        # so ledger errors raised mid-session leave the row untouched.
        try:
            with self._psycopg.connect(self.database_url, row_factory=self._dict_row) as conn:
                yield conn
        except self._psycopg.Error as exc:
            raise StorageError(f"PostgreSQL ledger operation failed: {exc}") from exc

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "task-ledger[postgres]"'
            ) from exc
        return psycopg, dict_row, Json


def _parse_document(raw: Any, task_id: str) -> Ledger:
    try:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        return Ledger.model_validate(parsed)
    except (ValueError, ValidationError) as exc:
        raise StorageError(f"Corrupt ledger document for task '{task_id}': {exc}") from exc
