"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the `.value`.
"""

from __future__ import annotations

from enum import Enum


class WorkflowStage(str, Enum):
    """Broker-side processing pipeline position. Forward-only, see workflow.stages."""

    RFQ_GENERATION = "rfq-generation"
    INSURER_MATCHING = "insurer-matching"
    QUOTE_EVALUATION = "quote-evaluation"
    CLIENT_SELECTION = "client-selection"
    COMPLETED = "completed"
    CONVERTED = "converted"  # terminal


class QuoteStatus(str, Enum):
    """Client-facing quote status, orthogonal to the workflow stage."""

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    """Premium payment state tracked on the quote."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CandidateSource(str, Enum):
    """Which pool a candidate came from."""

    DISPATCHED = "dispatched"
    MANUAL = "manual"


class EvaluationSource(str, Enum):
    """Who produced the rating scores of a forwarded evaluation."""

    HUMAN = "human"
    AI = "ai"


# Sentinel underwriter value meaning "not yet backfilled"
UNDERWRITER_TBD = "TBD"
