"""Request/response bodies of the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from quotedesk.models.enums import EvaluationSource
from quotedesk.schemas.events import SystemEvent
from quotedesk.schemas.quotes import CandidateQuote, EmailQuoteResponse, PoolSummary


class ScoreRequest(BaseModel):
    """Current state of the evaluation screen: both pools plus unapplied email replies."""

    dispatched: list[CandidateQuote] = Field(default_factory=list)
    manual: list[CandidateQuote] = Field(default_factory=list)
    email_responses: list[EmailQuoteResponse] = Field(default_factory=list)
    mode: EvaluationSource = EvaluationSource.HUMAN


class ScoreResponse(BaseModel):
    dispatched: list[CandidateQuote]
    manual: list[CandidateQuote]
    summary: PoolSummary
    unmatched_responses: list[str] = Field(default_factory=list)
    events: list[SystemEvent] = Field(default_factory=list)


class ForwardRequest(BaseModel):
    candidates: list[CandidateQuote]
    evaluation_source: EvaluationSource = EvaluationSource.HUMAN


class WorkflowRequest(BaseModel):
    # Plain strings: unknown names are rejected by the controller
    stage: str
    status: str


class ConvertRequest(BaseModel):
    policy_id: str = Field(min_length=1)
