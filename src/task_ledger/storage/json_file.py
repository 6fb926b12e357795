"""JSON-document ledger backend: one file per task under a data directory.

Writes go to a temporary file in the same directory, are fsynced, and then
atomically renamed over the previous document, so a crash leaves either the
old or the new ledger on disk and never a partial one. Serialization across
writers is per task and per process.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import quote, unquote

from pydantic import ValidationError

from task_ledger.errors import StorageError
from task_ledger.models import Ledger
from task_ledger.storage.base import DocumentLedgerStore
from task_ledger.storage.locks import KeyedLocks

SUFFIX = ".json"


class _FileSession:
    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> Ledger | None:
        return _read_document(self._path)

    def save(self, ledger: Ledger) -> None:
        _write_document(self._path, ledger)


class JsonFileLedgerStore(DocumentLedgerStore):
    """Durable file-backed store for a single coordinating process."""

    def __init__(self, data_dir: str | Path, *, lock_timeout_s: float = 5.0) -> None:
        self.data_dir = Path(data_dir)
        self.lock_timeout_s = lock_timeout_s
        self._locks = KeyedLocks()

    def migrate(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create ledger directory {self.data_dir}: {exc}") from exc

    def list_tasks(self) -> list[str]:
        if not self.data_dir.exists():
            return []
        try:
            names = [path.name for path in self.data_dir.iterdir() if path.suffix == SUFFIX]
        except OSError as exc:
            raise StorageError(f"Cannot list ledger directory {self.data_dir}: {exc}") from exc
        return sorted(unquote(name[: -len(SUFFIX)]) for name in names)

    def path_for(self, task_id: str) -> Path:
        return self.data_dir / f"{quote(task_id, safe='')}{SUFFIX}"

    @contextmanager
    def _session(self, task_id: str) -> Iterator[_FileSession]:
        with self._locks.hold(task_id, timeout_s=self.lock_timeout_s):
            yield _FileSession(self.path_for(task_id))

    def _snapshot(self, task_id: str) -> Ledger | None:
        with self._locks.hold(task_id, timeout_s=self.lock_timeout_s):
            return _read_document(self.path_for(task_id))


def _read_document(path: Path) -> Ledger | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StorageError(f"Cannot read ledger {path}: {exc}") from exc
    try:
        return Ledger.model_validate_json(raw)
    except ValidationError as exc:
        raise StorageError(f"Corrupt ledger document {path}: {exc}") from exc


def _write_document(path: Path, ledger: Ledger) -> None:
    payload = ledger.model_dump_json(indent=2)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".ledger-", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise StorageError(f"Cannot write ledger {path}: {exc}") from exc
