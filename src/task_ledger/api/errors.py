"""Map ledger errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from task_ledger.errors import (
    CriteriaNotMetError,
    DuplicateEntryError,
    InvalidTransitionError,
    LedgerError,
    StalledError,
    StorageError,
    TerminalStateError,
    UnknownTaskError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (UnknownTaskError, 404),
    (InvalidTransitionError, 409),
    (TerminalStateError, 409),
    (CriteriaNotMetError, 409),
    (StalledError, 409),
    (DuplicateEntryError, 409),
    (StorageError, 503),
)


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "api event=ledger_error path=%s status=%s error=%s",
                request.url.path,
                status_code,
                exc,
            )
        else:
            logger.info(
                "api event=request_rejected path=%s status=%s code=%s",
                request.url.path,
                status_code,
                exc.code,
            )
        return JSONResponse(status_code=status_code, content=exc.to_payload())
