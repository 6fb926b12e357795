"""Select node: ask the handoff queue what can run now."""

from __future__ import annotations

from task_ledger.coordinator.runtime import CoordinatorRuntime
from task_ledger.coordinator.state import CoordinatorState
from task_ledger.errors import StalledError
from task_ledger.handoff import next_eligible
from task_ledger.models import LedgerState


def run(state: CoordinatorState, runtime: CoordinatorRuntime) -> CoordinatorState:
    ledger = runtime.store.read(state["task_id"])
    if ledger.state is LedgerState.BLOCKED:
        return {"eligible": [], "outcome": "blocked"}

    try:
        eligible = next_eligible(
            ledger,
            readiness_check=runtime.readiness_check,
            timeout_s=runtime.readiness_timeout_s,
        )
    except StalledError as exc:
        telemetry = dict(state.get("telemetry", {}))
        telemetry["stall"] = {"chain": exc.chain, "errored": exc.errored}
        return {"eligible": [], "outcome": "stalled", "chain": exc.chain, "telemetry": telemetry}

    return {"eligible": eligible}
