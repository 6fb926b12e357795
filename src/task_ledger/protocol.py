"""Status protocol: the ledger state machine and its guards."""

from __future__ import annotations

from task_ledger.errors import CriteriaNotMetError, InvalidTransitionError, TerminalStateError
from task_ledger.models import Contribution, ContributionStatus, Ledger, LedgerState

ALLOWED_TRANSITIONS: dict[LedgerState, frozenset[LedgerState]] = {
    LedgerState.PLANNING: frozenset({LedgerState.ACTIVE, LedgerState.BLOCKED}),
    LedgerState.ACTIVE: frozenset({LedgerState.BLOCKED, LedgerState.COMPLETE}),
    LedgerState.BLOCKED: frozenset({LedgerState.ACTIVE}),
    LedgerState.COMPLETE: frozenset(),
}


def ensure_open(ledger: Ledger, operation: str) -> None:
    """Reject any mutation of a COMPLETE ledger."""
    if ledger.state is LedgerState.COMPLETE:
        raise TerminalStateError(ledger.task_id, operation)


def check_transition(
    ledger: Ledger,
    new_state: LedgerState,
    *,
    contribution: Contribution | None = None,
) -> None:
    current = ledger.state
    ensure_open(ledger, f"update_state:{new_state.value}")
    if new_state not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, new_state)

    if current is LedgerState.PLANNING and new_state is LedgerState.ACTIVE:
        if not ledger.completion_criteria:
            raise InvalidTransitionError(current, new_state, "no completion criteria defined")

    if new_state is LedgerState.BLOCKED and not _has_blocking_contribution(contribution):
        raise InvalidTransitionError(
            current,
            new_state,
            "blocking requires a contribution declaring BLOCKED",
        )

    if new_state is LedgerState.COMPLETE:
        unmet = ledger.unmet_criteria()
        if unmet:
            raise CriteriaNotMetError(ledger.task_id, unmet)


def apply_transition(
    ledger: Ledger,
    new_state: LedgerState,
    *,
    contribution: Contribution | None = None,
) -> None:
    """Validate and apply ``new_state`` in place, appending ``contribution`` if given."""
    check_transition(ledger, new_state, contribution=contribution)
    if contribution is not None:
        ledger.contributions.append(contribution)
    ledger.state = new_state


def _has_blocking_contribution(contribution: Contribution | None) -> bool:
    # Only a contribution supplied with this transition counts.
    return contribution is not None and contribution.declared_status is ContributionStatus.BLOCKED
