"""Coordinator loop over the ledger, handoff queue, and verifier."""

from task_ledger.coordinator.runner import Coordinator
from task_ledger.coordinator.runtime import DEFAULT_WORKER, CoordinatorRuntime, Worker
from task_ledger.coordinator.state import CoordinatorState, WorkerReport

__all__ = [
    "DEFAULT_WORKER",
    "Coordinator",
    "CoordinatorRuntime",
    "CoordinatorState",
    "Worker",
    "WorkerReport",
]
