"""SQLAlchemy ORM models for QuoteDesk.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from quotedesk.models.audit import AuditLog
from quotedesk.models.base import Base
from quotedesk.models.enums import (
    UNDERWRITER_TBD,
    CandidateSource,
    EvaluationSource,
    PaymentStatus,
    QuoteStatus,
    WorkflowStage,
)
from quotedesk.models.evaluated_quote import EvaluatedQuote
from quotedesk.models.quote import Quote

__all__ = [
    # Base
    "Base",
    # Models
    "Quote",
    "EvaluatedQuote",
    "AuditLog",
    # Enums
    "WorkflowStage",
    "QuoteStatus",
    "PaymentStatus",
    "CandidateSource",
    "EvaluationSource",
    "UNDERWRITER_TBD",
]
