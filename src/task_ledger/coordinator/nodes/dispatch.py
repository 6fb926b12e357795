"""Dispatch node: hand each eligible item to its worker and record the result."""

from __future__ import annotations

import logging
from functools import partial

from task_ledger.coordinator.runtime import CoordinatorRuntime, Worker
from task_ledger.coordinator.state import CoordinatorState, WorkerReport
from task_ledger.gateway import run_bounded
from task_ledger.models import Contribution, ContributionStatus, LedgerState

logger = logging.getLogger(__name__)

COORDINATOR_NAME = "coordinator"


def run(state: CoordinatorState, runtime: CoordinatorRuntime) -> CoordinatorState:
    task_id = state["task_id"]
    dispatched = list(state.get("dispatched", []))
    telemetry = dict(state.get("telemetry", {}))
    events = list(telemetry.get("dispatch", []))
    loop_count = int(state.get("loop_count", 0)) + 1

    for item_id in state.get("eligible", []):
        contribution = _run_worker(runtime, task_id, item_id)
        dispatched.append(item_id)
        events.append(
            {
                "iteration": loop_count,
                "item_id": item_id,
                "worker": contribution.worker_name,
                "status": contribution.declared_status.value,
            }
        )
        halt = _record(runtime, task_id, contribution)
        if halt is not None:
            telemetry["dispatch"] = events
            return {
                "dispatched": dispatched,
                "eligible": [],
                "outcome": halt,
                "loop_count": loop_count,
                "telemetry": telemetry,
            }

    telemetry["dispatch"] = events
    return {
        "dispatched": dispatched,
        "eligible": [],
        "loop_count": loop_count,
        "telemetry": telemetry,
    }


def _run_worker(runtime: CoordinatorRuntime, task_id: str, item_id: str) -> Contribution:
    worker = runtime.worker_for(item_id)
    if worker is None:
        return Contribution(
            worker_name=COORDINATOR_NAME,
            declared_status=ContributionStatus.BLOCKED,
            findings=f"No worker registered for item '{item_id}'",
            item_id=item_id,
        )

    snapshot = runtime.store.read(task_id)
    item = snapshot.work_item(item_id)
    name = _worker_name(worker)
    outcome = run_bounded(
        partial(worker, item),
        snapshot,
        timeout_s=runtime.worker_timeout_s,
        label=f"worker '{name}' for item '{item_id}'",
    )
    if not outcome.ok or not isinstance(outcome.value, WorkerReport):
        error = outcome.error or f"worker returned {type(outcome.value).__name__}"
        logger.warning(
            "coordinator event=worker_failed task_id=%s item_id=%s worker=%s error=%s",
            task_id,
            item_id,
            name,
            error,
        )
        return Contribution(
            worker_name=name,
            declared_status=ContributionStatus.BLOCKED,
            findings=error,
            item_id=item_id,
        )
    return outcome.value.to_contribution(item_id=item_id, default_worker=name)


def _record(runtime: CoordinatorRuntime, task_id: str, contribution: Contribution) -> str | None:
    status = contribution.declared_status
    if status is ContributionStatus.BLOCKED:
        runtime.store.update_state(task_id, LedgerState.BLOCKED, contribution=contribution)
        return "blocked"

    runtime.store.append_contribution(task_id, contribution)
    if status is ContributionStatus.NEEDS_INPUT:
        question = contribution.handoff_notes or contribution.findings
        if question:
            runtime.store.add_open_question(task_id, question)
        return "needs_input"
    return None


def _worker_name(worker: Worker) -> str:
    return getattr(worker, "worker_name", None) or getattr(worker, "__name__", None) or "worker"
