from __future__ import annotations

import shlex
import sys
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from task_ledger.errors import TerminalStateError
from task_ledger.models import (
    CheckResult,
    Contribution,
    ContributionStatus,
    Criterion,
    CriterionStatus,
    LedgerState,
)
from task_ledger.storage.postgres import PostgresLedgerStore


def _task_id() -> str:
    return f"it-{uuid.uuid4()}"


def test_concurrent_appends_from_separate_stores(postgres_store: PostgresLedgerStore) -> None:
    task_id = _task_id()
    postgres_store.get_or_create(task_id)
    stores = [
        PostgresLedgerStore(postgres_store.database_url, lock_timeout_s=5.0) for _ in range(2)
    ]
    names = [f"worker-{index}" for index in range(10)]
    start = threading.Barrier(len(names))

    def _append(index: int) -> None:
        start.wait()
        stores[index % 2].append_contribution(
            task_id,
            Contribution(worker_name=names[index], declared_status=ContributionStatus.COMPLETE),
        )

    with ThreadPoolExecutor(max_workers=len(names)) as pool:
        list(pool.map(_append, range(len(names))))

    ledger = postgres_store.read(task_id)
    assert sorted(entry.worker_name for entry in ledger.contributions) == sorted(names)
    assert ledger.version == len(names)
    assert task_id in postgres_store.list_tasks()


def test_terminal_ledger_is_frozen(postgres_store: PostgresLedgerStore) -> None:
    task_id = _task_id()
    postgres_store.get_or_create(task_id)
    postgres_store.add_criterion(task_id, Criterion(key="done"))
    postgres_store.update_state(task_id, LedgerState.ACTIVE)
    postgres_store.record_verification(task_id, {"done": CheckResult(status=CriterionStatus.MET)})
    postgres_store.update_state(task_id, LedgerState.COMPLETE)

    with pytest.raises(TerminalStateError):
        postgres_store.append_contribution(
            task_id,
            Contribution(worker_name="late", declared_status=ContributionStatus.COMPLETE),
        )
    assert postgres_store.read(task_id).contributions == []


def test_api_flow_against_postgres(api_base_url: str, call_json) -> None:
    task_id = _task_id()
    command = shlex.join([sys.executable, "-c", "print(0)"])

    status, body = call_json(api_base_url, "PUT", f"/tasks/{task_id}")
    assert status == 200
    assert body["state"] == "PLANNING"

    status, _ = call_json(
        api_base_url,
        "POST",
        f"/tasks/{task_id}/criteria",
        {"key": "remaining", "verification_reference": command, "threshold": 0, "direction": "<="},
    )
    assert status == 200
    status, _ = call_json(api_base_url, "POST", f"/tasks/{task_id}/state", {"state": "ACTIVE"})
    assert status == 200

    status, body = call_json(api_base_url, "POST", f"/tasks/{task_id}/complete")
    assert status == 200
    assert body["state"] == "COMPLETE"

    status, body = call_json(
        api_base_url,
        "POST",
        f"/tasks/{task_id}/contributions",
        {"worker_name": "late", "declared_status": "COMPLETE"},
    )
    assert status == 409
    assert body["error"] == "terminal_state"
