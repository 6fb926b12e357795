"""FastAPI app entrypoint for the worker-facing ledger API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from pydantic import BaseModel, Field

from task_ledger.api.errors import install_error_handlers
from task_ledger.config.settings import Settings, configure_logging, get_settings
from task_ledger.handoff import HandoffEvaluation, ensure_progress, evaluate
from task_ledger.models import (
    Contribution,
    ContributionStatus,
    Criterion,
    Direction,
    Ledger,
    LedgerState,
    WorkItem,
)
from task_ledger.storage import LedgerStore, build_store
from task_ledger.verification import CheckFn, CompletionVerifier, command_check, unavailable_check

logger = logging.getLogger(__name__)


class ContributionRequest(BaseModel):
    worker_name: str = Field(min_length=1)
    declared_status: ContributionStatus
    findings: str = ""
    handoff_notes: str = ""
    item_id: str | None = None

    def to_contribution(self) -> Contribution:
        return Contribution(**self.model_dump())


class StateRequest(BaseModel):
    state: LedgerState
    contribution: ContributionRequest | None = None


class CriterionRequest(BaseModel):
    key: str = Field(min_length=1)
    description: str = ""
    verification_reference: str = ""
    threshold: float | None = None
    direction: Direction = ">="


class NextStepsRequest(BaseModel):
    steps: list[str] = Field(default_factory=list)


class QuestionRequest(BaseModel):
    question: str = Field(min_length=1)


class TaskListResponse(BaseModel):
    tasks: list[str]


class CriteriaResponse(BaseModel):
    task_id: str
    criteria: list[Criterion]


class HandoffResponse(BaseModel):
    task_id: str
    eligible: list[str]
    waiting: list[str]
    completed: list[str]
    errored: dict[str, str]

    @classmethod
    def from_evaluation(cls, task_id: str, evaluation: HandoffEvaluation) -> HandoffResponse:
        return cls(
            task_id=task_id,
            eligible=evaluation.eligible,
            waiting=evaluation.waiting,
            completed=evaluation.completed,
            errored=evaluation.errored,
        )


def _default_check(settings: Settings) -> CheckFn:
    if settings.verification_mode == "command":
        return command_check(
            timeout_s=settings.check_timeout_s,
            allowed_programs=settings.command_allowlist,
        )
    return unavailable_check


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    check: CheckFn,
    storage_override: LedgerStore | None,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or build_store(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "verifier"):
        app.state.verifier = CompletionVerifier(
            app.state.storage,
            check,
            timeout_s=settings.check_timeout_s,
        )


def create_app(
    *,
    storage: LedgerStore | None = None,
    settings_override: Settings | None = None,
    check: CheckFn | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    configure_logging(settings)
    verification_check = check or _default_check(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            check=verification_check,
            storage_override=storage,
        )
        logger.info(
            "api event=startup app=%s backend=%s",
            settings.app_name,
            type(app.state.storage).__name__,
        )
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)
    install_error_handlers(app)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure_runtime_state(
            app,
            settings=settings,
            check=verification_check,
            storage_override=storage,
        )

    def _runtime(request: Request) -> None:
        if not hasattr(request.app.state, "storage"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                check=verification_check,
                storage_override=storage,
            )

    def _store(request: Request) -> LedgerStore:
        _runtime(request)
        return request.app.state.storage

    def _verifier(request: Request) -> CompletionVerifier:
        _runtime(request)
        return request.app.state.verifier

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tasks", response_model=TaskListResponse)
    def list_tasks(request: Request) -> TaskListResponse:
        return TaskListResponse(tasks=_store(request).list_tasks())

    @app.put("/tasks/{task_id}", response_model=Ledger)
    def get_or_create(task_id: str, request: Request) -> Ledger:
        return _store(request).get_or_create(task_id)

    @app.get("/tasks/{task_id}", response_model=Ledger)
    def read(task_id: str, request: Request) -> Ledger:
        return _store(request).read(task_id)

    @app.post("/tasks/{task_id}/contributions", response_model=Ledger)
    def append_contribution(
        task_id: str, payload: ContributionRequest, request: Request
    ) -> Ledger:
        return _store(request).append_contribution(task_id, payload.to_contribution())

    @app.post("/tasks/{task_id}/state", response_model=Ledger)
    def update_state(task_id: str, payload: StateRequest, request: Request) -> Ledger:
        contribution = payload.contribution.to_contribution() if payload.contribution else None
        return _store(request).update_state(task_id, payload.state, contribution=contribution)

    @app.post("/tasks/{task_id}/criteria", response_model=Ledger)
    def add_criterion(task_id: str, payload: CriterionRequest, request: Request) -> Ledger:
        return _store(request).add_criterion(task_id, Criterion(**payload.model_dump()))

    @app.post("/tasks/{task_id}/items", response_model=Ledger)
    def declare_item(task_id: str, payload: WorkItem, request: Request) -> Ledger:
        return _store(request).declare_item(task_id, payload)

    @app.put("/tasks/{task_id}/next-steps", response_model=Ledger)
    def set_next_steps(task_id: str, payload: NextStepsRequest, request: Request) -> Ledger:
        return _store(request).set_next_steps(task_id, payload.steps)

    @app.post("/tasks/{task_id}/open-questions", response_model=Ledger)
    def add_open_question(task_id: str, payload: QuestionRequest, request: Request) -> Ledger:
        return _store(request).add_open_question(task_id, payload.question)

    @app.delete("/tasks/{task_id}/open-questions", response_model=Ledger)
    def resolve_open_question(task_id: str, question: str, request: Request) -> Ledger:
        return _store(request).resolve_open_question(task_id, question)

    @app.post("/tasks/{task_id}/verify", response_model=CriteriaResponse)
    def verify(task_id: str, request: Request) -> CriteriaResponse:
        criteria = _verifier(request).verify(task_id)
        return CriteriaResponse(task_id=task_id, criteria=criteria)

    @app.post("/tasks/{task_id}/complete", response_model=Ledger)
    def complete(task_id: str, request: Request) -> Ledger:
        return _verifier(request).complete(task_id)

    @app.get("/tasks/{task_id}/handoff", response_model=HandoffResponse)
    def handoff(task_id: str, request: Request) -> HandoffResponse:
        ledger = _store(request).read(task_id)
        evaluation = evaluate(ledger)
        ensure_progress(ledger, evaluation)
        return HandoffResponse.from_evaluation(task_id, evaluation)

    return app


app = create_app()
