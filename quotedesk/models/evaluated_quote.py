"""EvaluatedQuote model — one scored insurer response forwarded toward the client."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quotedesk.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from quotedesk.models.quote import Quote


class EvaluatedQuote(TimestampMixin, Base):
    """Persisted evaluation row keyed by (quote_id, insurer_key).

    The whole set for a quote is replaced on every forward.
    """

    __tablename__ = "evaluated_quotes"
    __table_args__ = (UniqueConstraint("quote_id", "insurer_key", name="uq_evaluated_quotes_quote_insurer"),)

    # Foreign keys
    quote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Insurer identity
    insurer_key: Mapped[str] = mapped_column(String(100), nullable=False, comment="Insurer id or manual key")
    insurer_id: Mapped[str | None] = mapped_column(String(100))
    insurer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    insurer_email: Mapped[str | None] = mapped_column(String(255))
    source: Mapped[str] = mapped_column(String(20), nullable=False, comment="dispatched or manual")

    # Offer
    commission_split: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    premium_quoted: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    terms_conditions: Mapped[str] = mapped_column(Text, nullable=False, default="")
    exclusions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    coverage_limits: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    remarks: Mapped[str | None] = mapped_column(Text)
    document_url: Mapped[str | None] = mapped_column(String(1024))
    response_received: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Evaluation
    rating_score: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    evaluation_source: Mapped[str] = mapped_column(String(10), nullable=False, comment="human or ai")
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    quote: Mapped[Quote] = relationship("Quote", back_populates="evaluated_quotes")

    def __repr__(self) -> str:
        return (
            f"<EvaluatedQuote insurer={self.insurer_name} score={self.rating_score} "
            f"quote_id={self.quote_id}>"
        )
