"""Completion verification."""

from task_ledger.verification.checks import command_check, registry_check, unavailable_check
from task_ledger.verification.verifier import (
    CheckFn,
    CompletionVerifier,
    compare,
    judge,
    verify_criteria,
)

__all__ = [
    "CheckFn",
    "CompletionVerifier",
    "command_check",
    "compare",
    "judge",
    "registry_check",
    "unavailable_check",
    "verify_criteria",
]
