"""Finalize node: close the task when every criterion is met."""

from __future__ import annotations

from task_ledger.coordinator.runtime import CoordinatorRuntime
from task_ledger.coordinator.state import CoordinatorState
from task_ledger.errors import CriteriaNotMetError
from task_ledger.models import LedgerState


def run(state: CoordinatorState, runtime: CoordinatorRuntime) -> CoordinatorState:
    if state.get("outcome"):
        return {"outcome": state["outcome"]}

    task_id = state["task_id"]
    ledger = runtime.store.read(task_id)
    if ledger.state is not LedgerState.ACTIVE or ledger.unmet_criteria():
        return {"outcome": "incomplete", "unmet": [item.key for item in ledger.unmet_criteria()]}

    try:
        runtime.store.update_state(task_id, LedgerState.COMPLETE)
    except CriteriaNotMetError as exc:
        return {"outcome": "incomplete", "unmet": [item.key for item in exc.unmet]}
    return {"outcome": "complete", "unmet": []}
