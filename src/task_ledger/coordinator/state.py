"""Typed state contract for the coordinator graph."""

from typing import Any, TypedDict

from pydantic import BaseModel, Field

from task_ledger.models import Contribution, ContributionStatus


class WorkerReport(BaseModel):
    """What a worker hands back for one dispatched item."""

    declared_status: ContributionStatus
    findings: str = ""
    handoff_notes: str = ""
    worker_name: str | None = Field(default=None, min_length=1)

    def to_contribution(self, *, item_id: str, default_worker: str) -> Contribution:
        return Contribution(
            worker_name=self.worker_name or default_worker,
            declared_status=self.declared_status,
            findings=self.findings,
            handoff_notes=self.handoff_notes,
            item_id=item_id,
        )


class CoordinatorState(TypedDict, total=False):
    task_id: str
    eligible: list[str]
    dispatched: list[str]
    # complete | incomplete | stalled | blocked | needs_input
    outcome: str | None
    unmet: list[str]
    chain: list[str]
    loop_count: int
    loop_budget: int
    telemetry: dict[str, Any]


def initial_state(task_id: str, loop_budget: int = 10) -> CoordinatorState:
    return {
        "task_id": task_id,
        "eligible": [],
        "dispatched": [],
        "outcome": None,
        "unmet": [],
        "chain": [],
        "loop_count": 0,
        "loop_budget": loop_budget,
        "telemetry": {},
    }
