"""Ledger document models shared by stores, verifier, queue, and API.

Field names here are the persisted layout: every backend stores one JSON
document per task with exactly these keys.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Direction = Literal[">=", "<=", "=="]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class LedgerState(str, Enum):
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    COMPLETE = "COMPLETE"


class ContributionStatus(str, Enum):
    COMPLETE = "COMPLETE"
    BLOCKED = "BLOCKED"
    NEEDS_INPUT = "NEEDS_INPUT"


class CriterionStatus(str, Enum):
    PENDING = "pending"
    MET = "met"
    FAILED = "failed"
    ERROR = "error"


class Contribution(BaseModel):
    """One worker's finished unit of work. Frozen once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    worker_name: str = Field(min_length=1)
    declared_status: ContributionStatus
    timestamp: datetime = Field(default_factory=utc_now)
    findings: str = ""
    handoff_notes: str = ""
    # Work item this contribution satisfies; worker_name is used when unset.
    item_id: str | None = None

    @property
    def satisfies(self) -> str:
        return self.item_id or self.worker_name


class Criterion(BaseModel):
    """A machine-checkable completion condition."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(min_length=1)
    description: str = ""
    verification_reference: str = ""
    # None means a boolean criterion decided by the check status alone.
    threshold: float | None = None
    direction: Direction = ">="
    status: CriterionStatus = CriterionStatus.PENDING
    observed_value: float | None = None
    detail: str | None = None
    checked_at: datetime | None = None

    @property
    def is_met(self) -> bool:
        return self.status is CriterionStatus.MET


class WorkItem(BaseModel):
    """A pending unit of work for the handoff queue."""

    model_config = ConfigDict(extra="forbid")

    item_id: str = Field(min_length=1)
    depends_on: list[str] = Field(default_factory=list)
    description: str = ""

    @field_validator("depends_on")
    @classmethod
    def _dedupe_dependencies(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class CheckResult(BaseModel):
    """What a verification callback reports for one criterion."""

    model_config = ConfigDict(extra="forbid")

    status: CriterionStatus
    observed_value: float | None = None
    detail: str | None = None

    @field_validator("status")
    @classmethod
    def _reject_pending(cls, value: CriterionStatus) -> CriterionStatus:
        if value is CriterionStatus.PENDING:
            raise ValueError("a check must report met, failed, or error")
        return value


class Ledger(BaseModel):
    """The durable document attached to one task."""

    task_id: str = Field(min_length=1)
    state: LedgerState = LedgerState.PLANNING
    contributions: list[Contribution] = Field(default_factory=list)
    completion_criteria: list[Criterion] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    work_items: list[WorkItem] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def criterion(self, key: str) -> Criterion | None:
        for item in self.completion_criteria:
            if item.key == key:
                return item
        return None

    def work_item(self, item_id: str) -> WorkItem | None:
        for item in self.work_items:
            if item.item_id == item_id:
                return item
        return None

    def unmet_criteria(self) -> list[Criterion]:
        return [item for item in self.completion_criteria if not item.is_met]

    def completed_item_ids(self) -> set[str]:
        return {
            entry.satisfies
            for entry in self.contributions
            if entry.declared_status is ContributionStatus.COMPLETE
        }
