"""Built-in verification callbacks.

``command_check`` treats ``verification_reference`` as a command line and
runs it without a shell; ``registry_check`` looks it up in a mapping of named
in-process checks. Both return ``CheckResult`` and never raise for an
ordinary failure; anything that prevents evaluation becomes ``error``.
"""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Collection, Mapping

from task_ledger.models import CheckResult, Criterion, CriterionStatus
from task_ledger.verification.verifier import CheckFn


def command_check(
    *,
    timeout_s: float = 30.0,
    cwd: str | None = None,
    allowed_programs: Collection[str] | None = None,
) -> CheckFn:
    """Build a check that runs each criterion's reference as an argv command.

    Exit code 0 means met, anything else failed. For threshold criteria the
    last non-empty stdout line is parsed as the observed value.

    When ``allowed_programs`` is given, a command whose ``argv[0]`` is not in
    it is never started and the criterion reports ``error``.
    """
    allowed = None if allowed_programs is None else frozenset(allowed_programs)

    def _check(criterion: Criterion) -> CheckResult:
        argv = shlex.split(criterion.verification_reference)
        if not argv:
            return CheckResult(status=CriterionStatus.ERROR, detail="empty verification command")
        if allowed is not None and argv[0] not in allowed:
            return CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"program '{argv[0]}' is not in the command allowlist",
            )
        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"command timed out after {timeout_s:.2f}s",
            )
        except OSError as exc:
            return CheckResult(
                status=CriterionStatus.ERROR, detail=f"command failed to start: {exc}"
            )

        if criterion.threshold is None:
            return CheckResult(
                status=CriterionStatus.MET if completed.returncode == 0 else CriterionStatus.FAILED,
                detail=f"exit_code={completed.returncode}",
            )

        if completed.returncode != 0:
            return CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"metric command exited {completed.returncode}: {_tail(completed.stderr)}",
            )
        observed = _last_number(completed.stdout)
        if observed is None:
            return CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"no numeric value in command output: {_tail(completed.stdout)!r}",
            )
        return CheckResult(status=CriterionStatus.MET, observed_value=observed)

    return _check


def registry_check(checks: Mapping[str, CheckFn]) -> CheckFn:
    """Dispatch on ``verification_reference`` to a named check."""

    def _check(criterion: Criterion) -> CheckResult:
        fn = checks.get(criterion.verification_reference)
        if fn is None:
            return CheckResult(
                status=CriterionStatus.ERROR,
                detail=f"unknown check reference '{criterion.verification_reference}'",
            )
        return fn(criterion)

    return _check


def unavailable_check(criterion: Criterion) -> CheckResult:
    return CheckResult(
        status=CriterionStatus.ERROR,
        detail=f"no verification backend configured for '{criterion.key}'",
    )


def _last_number(output: str) -> float | None:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        return float(lines[-1])
    except ValueError:
        return None


def _tail(text: str, limit: int = 200) -> str:
    return text.strip()[-limit:]
