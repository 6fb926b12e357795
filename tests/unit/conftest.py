from __future__ import annotations

import pytest

from task_ledger.models import Contribution, ContributionStatus, Criterion, LedgerState
from task_ledger.storage.memory import InMemoryLedgerStore


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore(lock_timeout_s=1.0)


@pytest.fixture
def make_contribution():
    def _make(
        worker_name: str = "converter",
        status: ContributionStatus = ContributionStatus.COMPLETE,
        **kwargs: object,
    ) -> Contribution:
        return Contribution(worker_name=worker_name, declared_status=status, **kwargs)

    return _make


@pytest.fixture
def active_task(store: InMemoryLedgerStore) -> str:
    store.get_or_create("T1")
    store.add_criterion(
        "T1",
        Criterion(
            key="tests_pass",
            description="test suite green",
            verification_reference="pytest",
        ),
    )
    store.update_state("T1", LedgerState.ACTIVE)
    return "T1"
