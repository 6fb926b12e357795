"""Verify node: refresh criterion status through the completion verifier."""

from __future__ import annotations

from task_ledger.coordinator.runtime import CoordinatorRuntime
from task_ledger.coordinator.state import CoordinatorState


def run(state: CoordinatorState, runtime: CoordinatorRuntime) -> CoordinatorState:
    criteria = runtime.verifier.verify(state["task_id"])
    telemetry = dict(state.get("telemetry", {}))
    telemetry["verification"] = {item.key: item.status.value for item in criteria}
    return {
        "unmet": [item.key for item in criteria if not item.is_met],
        "telemetry": telemetry,
    }
