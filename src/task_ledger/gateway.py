"""Run caller-supplied callables under a wall-clock timeout."""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
A = TypeVar("A")


class CallTimeoutError(TimeoutError):
    """The callable did not return within its budget."""


@dataclass(frozen=True)
class BoundedOutcome(Generic[T]):
    value: T | None
    error: str | None
    timed_out: bool
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.error is None


def call_with_timeout(fn: Callable[[A], T], arg: A, *, timeout_s: float, label: str) -> T:
    """Return ``fn(arg)`` or raise ``CallTimeoutError`` after ``timeout_s``.

    The worker thread is abandoned on timeout rather than joined, so a hung
    check never holds up the caller past its budget.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="task-ledger-call")
    try:
        future = pool.submit(fn, arg)
        try:
            return future.result(timeout=timeout_s)
        except TimeoutError as exc:
            future.cancel()
            raise CallTimeoutError(f"{label} timed out after {timeout_s:.2f}s") from exc
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def run_bounded(
    fn: Callable[[A], T],
    arg: A,
    *,
    timeout_s: float,
    label: str,
) -> BoundedOutcome[T]:
    """Like ``call_with_timeout`` but folds failures into the returned outcome."""
    started_at = time.perf_counter()
    try:
        value = call_with_timeout(fn, arg, timeout_s=timeout_s, label=label)
    except CallTimeoutError as exc:
        return BoundedOutcome(None, str(exc), True, _duration_ms(started_at))
    except Exception as exc:  # noqa: BLE001
        return BoundedOutcome(
            None, f"{label} raised {type(exc).__name__}: {exc}", False, _duration_ms(started_at)
        )
    return BoundedOutcome(value, None, False, _duration_ms(started_at))


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
