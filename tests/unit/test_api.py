from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from task_ledger.api.main import create_app
from task_ledger.config.settings import Settings
from task_ledger.errors import StorageError
from task_ledger.models import CheckResult, Criterion, CriterionStatus
from task_ledger.storage.memory import InMemoryLedgerStore
from task_ledger.verification import registry_check


class Gauge:
    def __init__(self, value: float) -> None:
        self.value = value

    def __call__(self, criterion: Criterion) -> CheckResult:
        return CheckResult(status=CriterionStatus.MET, observed_value=self.value)


@pytest.fixture
def gauge() -> Gauge:
    return Gauge(45.0)


@pytest.fixture
def client(store: InMemoryLedgerStore, gauge: Gauge) -> Iterator[TestClient]:
    app = create_app(
        storage=store,
        settings_override=Settings(storage_backend="memory", check_timeout_s=1.0),
        check=registry_check({"files-remaining": gauge}),
    )
    with TestClient(app) as test_client:
        yield test_client


def _start_task(client: TestClient, task_id: str = "T1") -> None:
    assert client.put(f"/tasks/{task_id}").status_code == 200
    response = client.post(
        f"/tasks/{task_id}/criteria",
        json={
            "key": "files_remaining",
            "description": "files converted",
            "verification_reference": "files-remaining",
            "threshold": 0,
            "direction": "<=",
        },
    )
    assert response.status_code == 200
    assert client.post(f"/tasks/{task_id}/state", json={"state": "ACTIVE"}).status_code == 200


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "task-ledger"}


def test_task_lifecycle(client: TestClient, gauge: Gauge) -> None:
    _start_task(client)

    contribution = client.post(
        "/tasks/T1/contributions",
        json={
            "worker_name": "converter",
            "declared_status": "COMPLETE",
            "findings": "converted 33 of 45 files",
        },
    )
    assert contribution.status_code == 200
    assert contribution.json()["contributions"][0]["worker_name"] == "converter"

    verify = client.post("/tasks/T1/verify")
    assert verify.status_code == 200
    assert verify.json()["criteria"][0]["status"] == "failed"

    rejected = client.post("/tasks/T1/state", json={"state": "COMPLETE"})
    assert rejected.status_code == 409
    payload = rejected.json()
    assert payload["error"] == "criteria_not_met"
    assert payload["unmet"][0]["key"] == "files_remaining"

    gauge.value = 0.0
    completed = client.post("/tasks/T1/complete")
    assert completed.status_code == 200
    assert completed.json()["state"] == "COMPLETE"

    late = client.post(
        "/tasks/T1/contributions",
        json={"worker_name": "straggler", "declared_status": "COMPLETE"},
    )
    assert late.status_code == 409
    assert late.json()["error"] == "terminal_state"

    assert client.get("/tasks").json() == {"tasks": ["T1"]}


def test_unknown_task_is_404(client: TestClient) -> None:
    response = client.get("/tasks/nope")
    assert response.status_code == 404
    assert response.json() == {
        "error": "unknown_task",
        "message": "No ledger exists for task 'nope'",
        "task_id": "nope",
    }


def test_invalid_transition_payload(client: TestClient) -> None:
    client.put("/tasks/T1")
    response = client.post("/tasks/T1/state", json={"state": "ACTIVE"})
    assert response.status_code == 409
    payload = response.json()
    assert payload["error"] == "invalid_transition"
    assert payload["from_state"] == "PLANNING"
    assert payload["attempted_state"] == "ACTIVE"


def test_block_with_contribution(client: TestClient) -> None:
    _start_task(client)
    response = client.post(
        "/tasks/T1/state",
        json={
            "state": "BLOCKED",
            "contribution": {
                "worker_name": "converter",
                "declared_status": "BLOCKED",
                "findings": "vendor SDK missing",
            },
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "BLOCKED"
    assert body["contributions"][-1]["findings"] == "vendor SDK missing"


def test_duplicate_criterion_is_409(client: TestClient) -> None:
    client.put("/tasks/T1")
    body = {"key": "lint"}
    assert client.post("/tasks/T1/criteria", json=body).status_code == 200
    duplicate = client.post("/tasks/T1/criteria", json=body)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_entry"


def test_planning_fields(client: TestClient) -> None:
    client.put("/tasks/T1")
    client.put("/tasks/T1/next-steps", json={"steps": ["inventory files", "convert"]})
    client.post("/tasks/T1/open-questions", json={"question": "Keep legacy API?"})
    client.post("/tasks/T1/open-questions", json={"question": "Target runtime?"})
    resolved = client.delete("/tasks/T1/open-questions", params={"question": "Keep legacy API?"})

    assert resolved.status_code == 200
    body = resolved.json()
    assert body["next_steps"] == ["inventory files", "convert"]
    assert body["open_questions"] == ["Target runtime?"]


def test_handoff_endpoint(client: TestClient) -> None:
    client.put("/tasks/T1")
    client.post("/tasks/T1/items", json={"item_id": "A"})
    client.post("/tasks/T1/items", json={"item_id": "B", "depends_on": ["A"]})

    first = client.get("/tasks/T1/handoff")
    assert first.status_code == 200
    assert first.json()["eligible"] == ["A"]
    assert first.json()["waiting"] == ["B"]

    client.post(
        "/tasks/T1/contributions",
        json={"worker_name": "builder", "declared_status": "COMPLETE", "item_id": "A"},
    )
    second = client.get("/tasks/T1/handoff").json()
    assert second["eligible"] == ["B"]
    assert second["completed"] == ["A"]


def test_stalled_handoff_is_409(client: TestClient) -> None:
    client.put("/tasks/T1")
    client.post("/tasks/T1/items", json={"item_id": "A", "depends_on": ["B"]})
    client.post("/tasks/T1/items", json={"item_id": "B", "depends_on": ["A"]})

    response = client.get("/tasks/T1/handoff")
    assert response.status_code == 409
    assert response.json()["chain"] == ["A", "B", "A"]


def test_storage_failure_is_503(
    client: TestClient, store: InMemoryLedgerStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail(task_id: str) -> None:
        raise StorageError("disk unavailable")

    monkeypatch.setattr(store, "read", _fail)
    response = client.get("/tasks/T1")
    assert response.status_code == 503
    assert response.json() == {"error": "storage_error", "message": "disk unavailable"}


def test_invalid_request_body_is_422(client: TestClient) -> None:
    client.put("/tasks/T1")
    response = client.post(
        "/tasks/T1/contributions",
        json={"worker_name": "", "declared_status": "DONE"},
    )
    assert response.status_code == 422


def _verify_touch_command(app, marker) -> dict:
    with TestClient(app) as test_client:
        test_client.put("/tasks/T1")
        test_client.post(
            "/tasks/T1/criteria",
            json={"key": "marker", "verification_reference": f"touch {marker}"},
        )
        response = test_client.post("/tasks/T1/verify")
    assert response.status_code == 200
    return response.json()["criteria"][0]


def test_default_settings_never_run_submitted_commands(tmp_path: Path) -> None:
    marker = tmp_path / "created-by-request"
    app = create_app(
        storage=InMemoryLedgerStore(),
        settings_override=Settings(storage_backend="memory"),
    )

    criterion = _verify_touch_command(app, marker)

    assert criterion["status"] == "error"
    assert not marker.exists()


def test_command_mode_only_runs_allowlisted_programs(tmp_path: Path) -> None:
    marker = tmp_path / "created-by-request"
    app = create_app(
        storage=InMemoryLedgerStore(),
        settings_override=Settings(
            storage_backend="memory",
            verification_mode="command",
            command_allowlist=[sys.executable],
        ),
    )

    criterion = _verify_touch_command(app, marker)

    assert criterion["status"] == "error"
    assert "allowlist" in criterion["detail"]
    assert not marker.exists()
