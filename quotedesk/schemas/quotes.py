"""Pydantic schemas for candidate pools, evaluations, and workflow results.

Pure data classes with no DB access and no I/O. Candidates are explicit entities
with optional fields and defaulting rules rather than open-ended dicts.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quotedesk.models.enums import CandidateSource, EvaluationSource, QuoteStatus, WorkflowStage
from quotedesk.schemas.events import SystemEvent

_AMOUNT_NOISE = re.compile(r"[^\d.\-]")


def parse_amount(value: Any) -> Decimal:
    """Coerce a money-ish value ("50,000,000", "₦1 200.50", 3000, None) to Decimal.

    Plain numeric strings, exponent notation included, parse as-is; anything
    else has its currency noise stripped first. Unparseable or empty input
    becomes 0.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        plain = Decimal(str(value))
    except InvalidOperation:
        pass
    else:
        if plain.is_finite():
            return plain
    cleaned = _AMOUNT_NOISE.sub("", str(value))
    try:
        return Decimal(cleaned) if cleaned else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


# ---------------------------------------------------------------------------
# Collaborator inputs
# ---------------------------------------------------------------------------


class DispatchedInsurer(BaseModel):
    """An insurer the RFQ was sent to, as supplied by the insurer-matching stage."""

    insurer_id: str | None = None
    insurer_name: str = ""
    insurer_email: str | None = None
    commission_split: Decimal = Decimal("0")
    dispatched_at: datetime | None = None

    @field_validator("commission_split", mode="before")
    @classmethod
    def _coerce_commission(cls, v: Any) -> Decimal:
        return parse_amount(v)


class ExtractedQuoteData(BaseModel):
    """Pre-extracted offer data from the document service. Every field optional."""

    premium_quoted: Decimal | None = None
    terms_conditions: str | None = None
    exclusions: list[str] | None = None
    coverage_limits: dict[str, Decimal] | None = None

    @field_validator("premium_quoted", mode="before")
    @classmethod
    def _coerce_premium(cls, v: Any) -> Decimal | None:
        return None if v is None else parse_amount(v)

    @field_validator("coverage_limits", mode="before")
    @classmethod
    def _coerce_limits(cls, v: Any) -> dict[str, Decimal] | None:
        if v is None:
            return None
        return {str(k): parse_amount(amount) for k, amount in dict(v).items()}


class EmailQuoteResponse(BaseModel):
    """An insurer's emailed quote, as parsed by the mailbox monitor."""

    insurer_name: str
    premium_quoted: Decimal
    terms_conditions: str | None = None
    exclusions: list[str] | None = None
    coverage_limits: dict[str, Decimal] | None = None
    document_url: str | None = None
    response_date: datetime | None = None

    @field_validator("premium_quoted", mode="before")
    @classmethod
    def _coerce_premium(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("coverage_limits", mode="before")
    @classmethod
    def _coerce_limits(cls, v: Any) -> dict[str, Decimal] | None:
        if v is None:
            return None
        return {str(k): parse_amount(amount) for k, amount in dict(v).items()}


# ---------------------------------------------------------------------------
# Candidate pool
# ---------------------------------------------------------------------------


class AiAnalysis(BaseModel):
    """Qualitative labels attached in AI evaluation mode."""

    premium_competitiveness: str
    recommendation: str
    terms_analysis: str
    risk_assessment: str
    confidence: str  # cosmetic, e.g. "87%"


class CandidateQuote(BaseModel):
    """An in-progress insurer response under evaluation."""

    key: str
    insurer_id: str | None = None
    insurer_name: str = ""
    insurer_email: str | None = None
    commission_split: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    premium_quoted: Decimal = Field(default=Decimal("0"), ge=0)
    terms_conditions: str = ""
    exclusions: list[str] = Field(default_factory=list)
    coverage_limits: dict[str, Decimal] = Field(default_factory=dict)
    rating_score: int | None = Field(default=None, ge=0, le=100)
    response_received: bool = False
    source: CandidateSource = CandidateSource.DISPATCHED
    ai_analysis: AiAnalysis | None = None
    remarks: str = ""
    document_url: str | None = None
    dispatched_at: datetime | None = None
    response_date: datetime | None = None

    @field_validator("commission_split", "premium_quoted", mode="before")
    @classmethod
    def _coerce_money(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("terms_conditions", "remarks", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v

    @field_validator("exclusions", mode="before")
    @classmethod
    def _dedupe_exclusions(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        seen: dict[str, None] = {}
        for item in v:
            if item:
                seen.setdefault(str(item), None)
        return list(seen)

    @field_validator("coverage_limits", mode="before")
    @classmethod
    def _coerce_limits(cls, v: Any) -> dict[str, Decimal]:
        if not v:
            return {}
        return {str(k): parse_amount(amount) for k, amount in dict(v).items()}

    @property
    def is_priced(self) -> bool:
        return self.premium_quoted > 0

    @property
    def is_forwardable(self) -> bool:
        """Response received and a positive premium."""
        return self.response_received and self.is_priced


class PoolSummary(BaseModel):
    """Counts over the combined pool plus the current best candidate."""

    total_dispatched: int
    total_manual: int
    total_received: int
    total_pending: int
    best_candidate: CandidateQuote | None = None


class ScoreBreakdown(BaseModel):
    """Per-factor rating components before clamping and rounding."""

    premium: Decimal = Decimal("0")
    terms: int = 0
    coverage: int = 0
    timeliness: int = 0
    commission: int = 0
    total: int = 0


# ---------------------------------------------------------------------------
# Evaluation & workflow results
# ---------------------------------------------------------------------------


class EvaluatedQuoteRecord(BaseModel):
    """A candidate frozen for persistence, with every required field defaulted."""

    model_config = ConfigDict(from_attributes=True)

    quote_id: uuid.UUID
    insurer_key: str
    insurer_id: str | None = None
    insurer_name: str
    insurer_email: str | None = None
    source: CandidateSource
    commission_split: Decimal
    premium_quoted: Decimal
    terms_conditions: str = ""
    exclusions: list[str] = Field(default_factory=list)
    coverage_limits: dict[str, Decimal] = Field(default_factory=dict)
    remarks: str = ""
    document_url: str | None = None
    response_received: bool = True
    rating_score: int = Field(ge=0, le=100)
    ai_analysis: AiAnalysis | None = None
    evaluation_source: EvaluationSource
    evaluated_at: datetime

    def to_row(self) -> dict[str, Any]:
        """Column values for the evaluated_quotes table (JSON-safe nested values)."""
        row = self.model_dump(exclude={"ai_analysis", "coverage_limits", "source", "evaluation_source"})
        row["source"] = self.source.value
        row["evaluation_source"] = self.evaluation_source.value
        row["coverage_limits"] = {k: str(v) for k, v in self.coverage_limits.items()}
        row["ai_analysis"] = self.ai_analysis.model_dump() if self.ai_analysis else None
        return row


class StageTransition(BaseModel):
    """Result of a single workflow write."""

    quote_id: uuid.UUID
    from_stage: WorkflowStage
    to_stage: WorkflowStage
    status: QuoteStatus
    updated_at: datetime


class ForwardResult(BaseModel):
    """Outcome of forwarding an evaluation to the client."""

    quote_id: uuid.UUID
    evaluation_source: EvaluationSource
    evaluated: list[EvaluatedQuoteRecord]
    best_quote: EvaluatedQuoteRecord
    workflow_stage: WorkflowStage
    stage_auto_advance_failed: bool = False
    notification_sent: bool = False
    events: list[SystemEvent] = Field(default_factory=list)

    @property
    def partially_failed(self) -> bool:
        """True when the primary forward succeeded but a secondary step did not."""
        return self.stage_auto_advance_failed or not self.notification_sent


class BackfillResult(BaseModel):
    """Per-run tally of the reconciliation scan."""

    scanned: int = 0
    applied: list[uuid.UUID] = Field(default_factory=list)
    skipped: list[uuid.UUID] = Field(default_factory=list)
    failed: list[uuid.UUID] = Field(default_factory=list)
    events: list[SystemEvent] = Field(default_factory=list)


class QuoteOut(BaseModel):
    """Read model of a canonical quote for API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    quote_number: str
    organization_id: uuid.UUID
    client_name: str | None = None
    premium: Decimal
    sum_insured: Decimal
    underwriter: str | None = None
    commission_rate: Decimal
    workflow_stage: str
    status: str
    payment_status: str
    final_contract_url: str | None = None
    converted_to_policy: str | None = None
    valid_until: date | None = None
    updated_at: datetime | None = None
