"""Handoff queue: which declared work items may run next."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from task_ledger.errors import StalledError
from task_ledger.gateway import run_bounded
from task_ledger.models import Ledger, WorkItem

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[WorkItem], bool]


@dataclass(frozen=True)
class HandoffEvaluation:
    eligible: list[str] = field(default_factory=list)
    waiting: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    # item_id -> reason, for items whose readiness check failed to evaluate.
    errored: dict[str, str] = field(default_factory=dict)


def evaluate(
    ledger: Ledger,
    *,
    readiness_check: ReadinessCheck | None = None,
    timeout_s: float = 5.0,
) -> HandoffEvaluation:
    """Classify every declared item without raising on a stall."""
    done = ledger.completed_item_ids()
    eligible: list[str] = []
    waiting: list[str] = []
    completed: list[str] = []
    errored: dict[str, str] = {}

    for item in ledger.work_items:
        if item.item_id in done:
            completed.append(item.item_id)
            continue
        if any(dependency not in done for dependency in item.depends_on):
            waiting.append(item.item_id)
            continue
        if readiness_check is None:
            eligible.append(item.item_id)
            continue

        outcome = run_bounded(
            readiness_check,
            item,
            timeout_s=timeout_s,
            label=f"readiness check for item '{item.item_id}'",
        )
        if not outcome.ok:
            logger.warning(
                "handoff event=readiness_error task_id=%s item_id=%s error=%s",
                ledger.task_id,
                item.item_id,
                outcome.error,
            )
            errored[item.item_id] = outcome.error or "unknown error"
        elif outcome.value:
            eligible.append(item.item_id)
        else:
            waiting.append(item.item_id)

    return HandoffEvaluation(
        eligible=eligible,
        waiting=waiting,
        completed=completed,
        errored=errored,
    )


def next_eligible(
    ledger: Ledger,
    *,
    readiness_check: ReadinessCheck | None = None,
    timeout_s: float = 5.0,
) -> list[str]:
    """Eligible item ids in declaration order.

    Raises ``StalledError`` when items remain pending but none can run.
    An empty list means every declared item is already complete.
    """
    evaluation = evaluate(ledger, readiness_check=readiness_check, timeout_s=timeout_s)
    ensure_progress(ledger, evaluation)
    return evaluation.eligible


def ensure_progress(ledger: Ledger, evaluation: HandoffEvaluation) -> None:
    """Raise ``StalledError`` if items remain but none of them can run."""
    if evaluation.eligible or not (evaluation.waiting or evaluation.errored):
        return
    chain = blocking_chain(ledger)
    logger.warning(
        "handoff event=stalled task_id=%s chain=%s errored=%s",
        ledger.task_id,
        chain,
        sorted(evaluation.errored),
    )
    raise StalledError(ledger.task_id, chain, evaluation.errored)


def blocking_chain(ledger: Ledger) -> list[str]:
    """Follow unmet dependencies from the first pending item.

    The chain ends at an item with no unmet dependency, at an id that was
    never declared, or repeats the first id seen twice when there is a cycle.
    """
    done = ledger.completed_item_ids()
    pending = [item for item in ledger.work_items if item.item_id not in done]
    if not pending:
        return []

    chain: list[str] = []
    seen: set[str] = set()
    current = pending[0].item_id
    while current not in seen:
        chain.append(current)
        seen.add(current)
        item = ledger.work_item(current)
        if item is None:
            return chain
        unmet = [dependency for dependency in item.depends_on if dependency not in done]
        if not unmet:
            return chain
        current = unmet[0]
    chain.append(current)
    return chain
