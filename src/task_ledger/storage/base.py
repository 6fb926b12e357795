"""Storage interface and the shared read-modify-write flow for ledger backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from typing import Protocol

from task_ledger.errors import DuplicateEntryError, StorageError, UnknownTaskError
from task_ledger.models import (
    CheckResult,
    Contribution,
    Criterion,
    CriterionStatus,
    Ledger,
    LedgerState,
    WorkItem,
    utc_now,
)
from task_ledger.protocol import apply_transition, ensure_open

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    def migrate(self) -> None: ...

    def list_tasks(self) -> list[str]: ...

    def get_or_create(self, task_id: str) -> Ledger: ...

    def read(self, task_id: str) -> Ledger: ...

    def append_contribution(self, task_id: str, contribution: Contribution) -> Ledger: ...

    def update_state(
        self,
        task_id: str,
        new_state: LedgerState,
        *,
        contribution: Contribution | None = None,
    ) -> Ledger: ...

    def add_criterion(self, task_id: str, criterion: Criterion) -> Ledger: ...

    def declare_item(self, task_id: str, item: WorkItem) -> Ledger: ...

    def set_next_steps(self, task_id: str, steps: list[str]) -> Ledger: ...

    def add_open_question(self, task_id: str, question: str) -> Ledger: ...

    def resolve_open_question(self, task_id: str, question: str) -> Ledger: ...

    def record_verification(self, task_id: str, results: Mapping[str, CheckResult]) -> Ledger: ...


class LedgerSession(Protocol):
    """One locked view of a single task's document."""

    def load(self) -> Ledger | None: ...

    def save(self, ledger: Ledger) -> None: ...


class DocumentLedgerStore(ABC):
    """Implements every ledger operation on top of ``_session`` and ``_snapshot``.

    Backends supply a session that holds the task's exclusive lock for the
    duration of one read-modify-write, and a snapshot read with a bounded
    wait. Everything else (protocol checks, terminal-state guard, append-only
    guard, versioning) lives here so all backends behave identically.
    """

    @abstractmethod
    def _session(self, task_id: str) -> AbstractContextManager[LedgerSession]:
        """Hold the task's write lock and yield a load/save session."""

    @abstractmethod
    def _snapshot(self, task_id: str) -> Ledger | None:
        """Current document for ``task_id`` or None, read with a bounded wait."""

    def migrate(self) -> None:
        return None

    @abstractmethod
    def list_tasks(self) -> list[str]:
        """Known task ids, sorted."""

    def get_or_create(self, task_id: str) -> Ledger:
        with self._session(task_id) as session:
            current = session.load()
            if current is not None:
                return current.model_copy(deep=True)
            created = Ledger(task_id=task_id)
            session.save(created)
        logger.info("ledger event=created task_id=%s", task_id)
        return created.model_copy(deep=True)

    def read(self, task_id: str) -> Ledger:
        snapshot = self._snapshot(task_id)
        if snapshot is None:
            raise UnknownTaskError(task_id)
        return snapshot

    def append_contribution(self, task_id: str, contribution: Contribution) -> Ledger:
        def _append(ledger: Ledger) -> None:
            ensure_open(ledger, "append_contribution")
            ledger.contributions.append(contribution)

        updated = self._mutate(task_id, _append)
        logger.info(
            "ledger event=contribution_appended task_id=%s worker=%s status=%s count=%s",
            task_id,
            contribution.worker_name,
            contribution.declared_status.value,
            len(updated.contributions),
        )
        return updated

    def update_state(
        self,
        task_id: str,
        new_state: LedgerState,
        *,
        contribution: Contribution | None = None,
    ) -> Ledger:
        previous: list[LedgerState] = []

        def _transition(ledger: Ledger) -> None:
            previous.append(ledger.state)
            apply_transition(ledger, new_state, contribution=contribution)

        updated = self._mutate(task_id, _transition)
        logger.info(
            "ledger event=state_changed task_id=%s from=%s to=%s",
            task_id,
            previous[0].value,
            new_state.value,
        )
        return updated

    def add_criterion(self, task_id: str, criterion: Criterion) -> Ledger:
        def _add(ledger: Ledger) -> None:
            ensure_open(ledger, "add_criterion")
            if ledger.criterion(criterion.key) is not None:
                raise DuplicateEntryError(f"Criterion '{criterion.key}' already exists")
            # Status is owned by the verifier; new criteria always start pending.
            ledger.completion_criteria.append(
                criterion.model_copy(
                    update={
                        "status": CriterionStatus.PENDING,
                        "observed_value": None,
                        "detail": None,
                        "checked_at": None,
                    }
                )
            )

        return self._mutate(task_id, _add)

    def declare_item(self, task_id: str, item: WorkItem) -> Ledger:
        def _declare(ledger: Ledger) -> None:
            ensure_open(ledger, "declare_item")
            if ledger.work_item(item.item_id) is not None:
                raise DuplicateEntryError(f"Work item '{item.item_id}' already declared")
            ledger.work_items.append(item)

        return self._mutate(task_id, _declare)

    def set_next_steps(self, task_id: str, steps: list[str]) -> Ledger:
        def _replace(ledger: Ledger) -> None:
            ensure_open(ledger, "set_next_steps")
            ledger.next_steps = list(steps)

        return self._mutate(task_id, _replace)

    def add_open_question(self, task_id: str, question: str) -> Ledger:
        def _add(ledger: Ledger) -> None:
            ensure_open(ledger, "add_open_question")
            if question not in ledger.open_questions:
                ledger.open_questions.append(question)

        return self._mutate(task_id, _add)

    def resolve_open_question(self, task_id: str, question: str) -> Ledger:
        def _resolve(ledger: Ledger) -> None:
            ensure_open(ledger, "resolve_open_question")
            ledger.open_questions = [item for item in ledger.open_questions if item != question]

        return self._mutate(task_id, _resolve)

    def record_verification(self, task_id: str, results: Mapping[str, CheckResult]) -> Ledger:
        def _record(ledger: Ledger) -> None:
            ensure_open(ledger, "record_verification")
            checked_at = utc_now()
            for index, criterion in enumerate(ledger.completion_criteria):
                result = results.get(criterion.key)
                # Met is final; results from an older snapshot never demote it.
                if result is None or criterion.is_met:
                    continue
                ledger.completion_criteria[index] = criterion.model_copy(
                    update={
                        "status": result.status,
                        "observed_value": result.observed_value,
                        "detail": result.detail,
                        "checked_at": checked_at,
                    }
                )

        return self._mutate(task_id, _record)

    def _mutate(self, task_id: str, change: Callable[[Ledger], None]) -> Ledger:
        with self._session(task_id) as session:
            current = session.load()
            if current is None:
                raise UnknownTaskError(task_id)
            updated = current.model_copy(deep=True)
            change(updated)
            _ensure_append_only(current, updated)
            updated.version = current.version + 1
            updated.updated_at = utc_now()
            session.save(updated)
        return updated.model_copy(deep=True)


def _ensure_append_only(before: Ledger, after: Ledger) -> None:
    committed = before.contributions
    if after.contributions[: len(committed)] != committed:
        raise StorageError(
            f"Refusing to rewrite committed contributions for task '{before.task_id}'"
        )

