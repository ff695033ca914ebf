"""Quote evaluation API — FastAPI router over the engine operations.

Engine collaborators are provided through dependency functions so tests can
swap them with ``app.dependency_overrides``. Domain errors map to HTTP:
ValidationError → 422, QuoteNotFoundError → 404, RemoteServiceError → 502.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from quotedesk.admin.events import EventRecorder
from quotedesk.config import settings
from quotedesk.db.repository import QuoteRepository, quote_repository
from quotedesk.errors import QuoteNotFoundError, RemoteServiceError, ValidationError
from quotedesk.evaluation.aggregator import QuoteAggregator
from quotedesk.evaluation.forwarder import EvaluationForwarder, evaluation_forwarder
from quotedesk.models import CandidateSource, EvaluationSource
from quotedesk.reconciliation.reconciler import DataReconciler, data_reconciler
from quotedesk.schemas.api import ConvertRequest, ForwardRequest, ScoreRequest, ScoreResponse, WorkflowRequest
from quotedesk.schemas.events import EventType
from quotedesk.schemas.quotes import ForwardResult, QuoteOut, StageTransition
from quotedesk.workflow.controller import WorkflowStageController, workflow_controller
from quotedesk.workflow.stages import parse_stage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quotes"])


# ── Dependencies ─────────────────────────────────────────────────────


def get_repository() -> QuoteRepository:
    return quote_repository


def get_controller() -> WorkflowStageController:
    return workflow_controller


def get_forwarder() -> EvaluationForwarder:
    return evaluation_forwarder


def get_reconciler() -> DataReconciler:
    return data_reconciler


# ── Error mapping ────────────────────────────────────────────────────


def register_error_handlers(app: FastAPI) -> None:
    """Translate domain exceptions into JSON error responses."""

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": type(exc).__name__, "detail": str(exc)})

    @app.exception_handler(QuoteNotFoundError)
    async def _not_found(request: Request, exc: QuoteNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": type(exc).__name__, "detail": str(exc)})

    @app.exception_handler(RemoteServiceError)
    async def _remote_failure(request: Request, exc: RemoteServiceError) -> JSONResponse:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": type(exc).__name__, "detail": str(exc)})


# ── Evaluation ───────────────────────────────────────────────────────


@router.post("/quotes/{quote_id}/evaluation/score", response_model=ScoreResponse)
async def score_evaluation(quote_id: uuid.UUID, body: ScoreRequest) -> ScoreResponse:
    """Merge email replies into the pool and rate every candidate."""
    aggregator = QuoteAggregator(quote_id, dispatched=body.dispatched)
    for candidate in body.manual:
        aggregator.add_manual(**candidate.model_dump())

    unmatched = [
        response.insurer_name
        for response in body.email_responses
        if aggregator.apply_email_response(response) is None
    ]

    recorder = EventRecorder("api.routes", quote_id)
    if body.mode is EvaluationSource.AI:
        results = aggregator.apply_ai_evaluation()
        await recorder.record(EventType.AI_EVALUATED, {
            "candidate_count": len(results),
            "scores": {c.key: c.rating_score for c in results},
        })
    else:
        aggregator.auto_rate()

    return ScoreResponse(
        dispatched=aggregator.pool(CandidateSource.DISPATCHED),
        manual=aggregator.pool(CandidateSource.MANUAL),
        summary=aggregator.summary(),
        unmatched_responses=unmatched,
        events=recorder.events,
    )


@router.post("/quotes/{quote_id}/evaluation/forward", response_model=ForwardResult)
async def forward_evaluation(
    quote_id: uuid.UUID,
    body: ForwardRequest,
    forwarder: EvaluationForwarder = Depends(get_forwarder),
) -> ForwardResult:
    return await forwarder.forward(quote_id, body.candidates, body.evaluation_source)


# ── Workflow ─────────────────────────────────────────────────────────


@router.post("/quotes/{quote_id}/workflow", response_model=StageTransition)
async def progress_workflow(
    quote_id: uuid.UUID,
    body: WorkflowRequest,
    controller: WorkflowStageController = Depends(get_controller),
) -> StageTransition:
    return await controller.progress_workflow(quote_id, body.stage, body.status)


@router.post("/quotes/{quote_id}/convert", response_model=QuoteOut)
async def convert_quote(
    quote_id: uuid.UUID,
    body: ConvertRequest,
    controller: WorkflowStageController = Depends(get_controller),
) -> QuoteOut:
    quote = await controller.convert_to_policy(quote_id, body.policy_id)
    return QuoteOut.model_validate(quote)


# ── Listings ─────────────────────────────────────────────────────────


@router.get("/organizations/{organization_id}/quotes/conversion-eligible", response_model=list[QuoteOut])
async def conversion_eligible_quotes(
    organization_id: uuid.UUID,
    reconciler: DataReconciler = Depends(get_reconciler),
) -> list[QuoteOut]:
    """Finalized quotes ready for policy conversion. Backfill runs first."""
    quotes = await reconciler.list_conversion_eligible_quotes(organization_id)
    return [QuoteOut.model_validate(q) for q in quotes]


@router.get("/quotes/expiring", response_model=list[QuoteOut])
async def expiring_quotes(
    days_ahead: int | None = Query(default=None, ge=0),
    repository: QuoteRepository = Depends(get_repository),
) -> list[QuoteOut]:
    """Sent quotes whose validity ends within ``days_ahead`` days."""
    days = settings.expiring_quote_days if days_ahead is None else days_ahead
    quotes = await repository.expiring_quotes(days)
    return [QuoteOut.model_validate(q) for q in quotes]


@router.get("/quotes", response_model=list[QuoteOut])
async def quotes_by_stage(
    stage: str = Query(...),
    repository: QuoteRepository = Depends(get_repository),
) -> list[QuoteOut]:
    quotes = await repository.quotes_by_stage(parse_stage(stage))
    return [QuoteOut.model_validate(q) for q in quotes]

