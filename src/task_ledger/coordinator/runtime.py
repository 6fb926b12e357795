"""Dependencies shared by coordinator nodes."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

from task_ledger.coordinator.state import WorkerReport
from task_ledger.handoff import ReadinessCheck
from task_ledger.models import Ledger, WorkItem
from task_ledger.storage.base import LedgerStore
from task_ledger.verification.verifier import CompletionVerifier

Worker = Callable[[WorkItem, Ledger], WorkerReport]

# Registry key used when no worker is registered under the item's own id.
DEFAULT_WORKER = "*"


@dataclass(frozen=True)
class CoordinatorRuntime:
    store: LedgerStore
    verifier: CompletionVerifier
    workers: Mapping[str, Worker]
    worker_timeout_s: float = 600.0
    readiness_check: ReadinessCheck | None = None
    readiness_timeout_s: float = 5.0

    def worker_for(self, item_id: str) -> Worker | None:
        return self.workers.get(item_id) or self.workers.get(DEFAULT_WORKER)
