"""Drive one task through its registered workers until it completes or halts."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from task_ledger.config.settings import Settings, get_settings
from task_ledger.coordinator.runtime import CoordinatorRuntime, Worker
from task_ledger.coordinator.state import CoordinatorState, initial_state
from task_ledger.coordinator.workflow import build_graph
from task_ledger.handoff import ReadinessCheck
from task_ledger.models import LedgerState
from task_ledger.storage.base import LedgerStore
from task_ledger.verification.verifier import CompletionVerifier

logger = logging.getLogger(__name__)


class Coordinator:
    """Lead loop: select eligible items, dispatch to workers, verify, finalize."""

    def __init__(
        self,
        store: LedgerStore,
        verifier: CompletionVerifier,
        workers: Mapping[str, Worker],
        *,
        readiness_check: ReadinessCheck | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.runtime = CoordinatorRuntime(
            store=store,
            verifier=verifier,
            workers=dict(workers),
            worker_timeout_s=self.settings.worker_timeout_s,
            readiness_check=readiness_check,
            readiness_timeout_s=self.settings.readiness_timeout_s,
        )
        self.max_loops = self.settings.max_coordinator_loops
        self.workflow = build_graph(self.runtime, max_loops=self.max_loops)

    def run(self, task_id: str) -> CoordinatorState:
        ledger = self.store.read(task_id)
        if ledger.state is LedgerState.COMPLETE:
            return {**initial_state(task_id, self.max_loops), "outcome": "complete"}
        if ledger.state is LedgerState.PLANNING:
            self.store.update_state(task_id, LedgerState.ACTIVE)

        logger.info("coordinator event=start task_id=%s max_loops=%s", task_id, self.max_loops)
        result: CoordinatorState = self.workflow.invoke(
            initial_state(task_id, self.max_loops),
            config={"recursion_limit": 2 * self.max_loops + 10},
        )
        logger.info(
            "coordinator event=finished task_id=%s outcome=%s dispatched=%s unmet=%s",
            task_id,
            result.get("outcome"),
            result.get("dispatched", []),
            result.get("unmet", []),
        )
        return result
