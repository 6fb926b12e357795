"""Durable task ledger for coordinating handoffs between independent workers."""

from task_ledger.errors import (
    CriteriaNotMetError,
    DuplicateEntryError,
    InvalidTransitionError,
    LedgerError,
    StalledError,
    StorageError,
    TerminalStateError,
    UnknownTaskError,
)
from task_ledger.models import (
    CheckResult,
    Contribution,
    ContributionStatus,
    Criterion,
    CriterionStatus,
    Ledger,
    LedgerState,
    WorkItem,
)

__version__ = "0.1.0"

__all__ = [
    "CheckResult",
    "Contribution",
    "ContributionStatus",
    "Criterion",
    "CriterionStatus",
    "CriteriaNotMetError",
    "DuplicateEntryError",
    "InvalidTransitionError",
    "Ledger",
    "LedgerError",
    "LedgerState",
    "StalledError",
    "StorageError",
    "TerminalStateError",
    "UnknownTaskError",
    "WorkItem",
]
