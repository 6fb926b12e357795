"""Completion verifier: run caller-supplied checks and record criterion status."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

from task_ledger.errors import LedgerError
from task_ledger.gateway import run_bounded
from task_ledger.models import (
    CheckResult,
    Criterion,
    CriterionStatus,
    Direction,
    Ledger,
    LedgerState,
)
from task_ledger.storage.base import LedgerStore

logger = logging.getLogger(__name__)

CheckFn = Callable[[Criterion], CheckResult]


def compare(observed: float, threshold: float, direction: Direction) -> bool:
    if direction == "<=":
        return observed <= threshold
    if direction == "==":
        return math.isclose(observed, threshold)
    return observed >= threshold


def judge(criterion: Criterion, result: CheckResult) -> CheckResult:
    """Fold a raw check result into the criterion's final status."""
    if result.status is CriterionStatus.ERROR or criterion.threshold is None:
        return result
    if result.observed_value is None:
        return CheckResult(
            status=CriterionStatus.ERROR,
            detail=f"threshold criterion '{criterion.key}' reported no observed value",
        )
    passed = compare(result.observed_value, criterion.threshold, criterion.direction)
    return CheckResult(
        status=CriterionStatus.MET if passed else CriterionStatus.FAILED,
        observed_value=result.observed_value,
        detail=result.detail
        or f"observed {result.observed_value:g} {criterion.direction} {criterion.threshold:g}",
    )


def verify_criteria(ledger: Ledger, check: CheckFn, *, timeout_s: float) -> dict[str, CheckResult]:
    """Evaluate every criterion that is not yet met. Pure: touches no store."""
    results: dict[str, CheckResult] = {}
    for criterion in ledger.completion_criteria:
        if criterion.is_met:
            continue
        outcome = run_bounded(
            check,
            criterion,
            timeout_s=timeout_s,
            label=f"check for criterion '{criterion.key}'",
        )
        if not outcome.ok:
            logger.warning(
                "verify event=check_error task_id=%s criterion=%s timed_out=%s error=%s",
                ledger.task_id,
                criterion.key,
                outcome.timed_out,
                outcome.error,
            )
            results[criterion.key] = CheckResult(status=CriterionStatus.ERROR, detail=outcome.error)
            continue
        if not isinstance(outcome.value, CheckResult):
            results[criterion.key] = CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"check returned {type(outcome.value).__name__}, expected CheckResult",
            )
            continue
        results[criterion.key] = judge(criterion, outcome.value)
    return results


class CompletionVerifier:
    """Read a snapshot, check outside any lock, then commit the whole batch at once."""

    def __init__(self, store: LedgerStore, check: CheckFn, *, timeout_s: float = 30.0) -> None:
        self.store = store
        self.check = check
        self.timeout_s = timeout_s

    def verify(self, task_id: str) -> list[Criterion]:
        snapshot = self.store.read(task_id)
        if snapshot.state is LedgerState.COMPLETE:
            return snapshot.completion_criteria

        results = verify_criteria(snapshot, self.check, timeout_s=self.timeout_s)
        if not results:
            return snapshot.completion_criteria

        updated = self.store.record_verification(task_id, results)
        logger.info(
            "verify event=recorded task_id=%s checked=%s met=%s failed=%s error=%s",
            task_id,
            len(results),
            _count(results, CriterionStatus.MET),
            _count(results, CriterionStatus.FAILED),
            _count(results, CriterionStatus.ERROR),
        )
        return updated.completion_criteria

    def complete(self, task_id: str) -> Ledger:
        """Verify, then request COMPLETE; raises ``CriteriaNotMetError`` on any unmet criterion."""
        self.verify(task_id)
        try:
            return self.store.update_state(task_id, LedgerState.COMPLETE)
        except LedgerError:
            logger.warning("verify event=complete_rejected task_id=%s", task_id)
            raise


def _count(results: dict[str, CheckResult], status: CriterionStatus) -> int:
    return sum(1 for item in results.values() if item.status is status)
