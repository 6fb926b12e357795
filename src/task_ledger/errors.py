"""Error taxonomy for ledger operations.

Every error is returned to the immediate caller; nothing in this package
retries on its own. ``to_payload`` gives the structured form used by the
HTTP layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from task_ledger.models import Criterion, LedgerState


class LedgerError(Exception):
    """Base class for all ledger failures."""

    code = "ledger_error"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class UnknownTaskError(LedgerError):
    code = "unknown_task"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"No ledger exists for task '{task_id}'")
        self.task_id = task_id

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "task_id": self.task_id}


class InvalidTransitionError(LedgerError):
    code = "invalid_transition"

    def __init__(
        self,
        from_state: LedgerState,
        attempted_state: LedgerState,
        reason: str | None = None,
    ) -> None:
        message = f"Transition {from_state.value} -> {attempted_state.value} is not allowed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_state = from_state
        self.attempted_state = attempted_state
        self.reason = reason

    def to_payload(self) -> dict[str, Any]:
        return {
            **super().to_payload(),
            "from_state": self.from_state.value,
            "attempted_state": self.attempted_state.value,
        }


class TerminalStateError(LedgerError):
    code = "terminal_state"

    def __init__(self, task_id: str, operation: str) -> None:
        super().__init__(f"Task '{task_id}' is COMPLETE; '{operation}' was rejected")
        self.task_id = task_id
        self.operation = operation

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "task_id": self.task_id, "operation": self.operation}


class CriteriaNotMetError(LedgerError):
    code = "criteria_not_met"

    def __init__(self, task_id: str, unmet: list[Criterion]) -> None:
        names = ", ".join(f"{item.key}={item.status.value}" for item in unmet)
        super().__init__(f"Task '{task_id}' cannot complete; unmet criteria: {names}")
        self.task_id = task_id
        self.unmet = unmet

    def to_payload(self) -> dict[str, Any]:
        return {
            **super().to_payload(),
            "task_id": self.task_id,
            "unmet": [item.model_dump(mode="json") for item in self.unmet],
        }


class StalledError(LedgerError):
    code = "stalled"

    def __init__(
        self,
        task_id: str,
        chain: list[str],
        errored: dict[str, str] | None = None,
    ) -> None:
        message = f"Task '{task_id}' has pending items but none are eligible"
        if chain:
            message = f"{message}; blocked by {' -> '.join(chain)}"
        super().__init__(message)
        self.task_id = task_id
        self.chain = chain
        self.errored = dict(errored or {})

    def to_payload(self) -> dict[str, Any]:
        return {
            **super().to_payload(),
            "task_id": self.task_id,
            "chain": self.chain,
            "errored": self.errored,
        }


class StorageError(LedgerError):
    """The backing store failed (I/O, corruption, lock wait exceeded)."""

    code = "storage_error"


class DuplicateEntryError(LedgerError):
    """A criterion key or work item id was declared twice on one ledger."""

    code = "duplicate_entry"
