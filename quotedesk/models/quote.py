"""Quote model — the canonical record a broker carries from RFQ to policy."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quotedesk.models.base import Base, TimestampMixin
from quotedesk.models.enums import UNDERWRITER_TBD, PaymentStatus, QuoteStatus, WorkflowStage

if TYPE_CHECKING:
    from quotedesk.models.evaluated_quote import EvaluatedQuote


class Quote(TimestampMixin, Base):
    """A client risk being quoted, evaluated, and eventually converted to a policy."""

    __tablename__ = "quotes"
    __table_args__ = (
        CheckConstraint("premium >= 0", name="ck_quotes_premium_non_negative"),
        CheckConstraint("sum_insured >= 0", name="ck_quotes_sum_insured_non_negative"),
    )

    quote_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    # External references (clients/organizations are managed elsewhere)
    client_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    # Denormalized client contact, used for eligibility and notifications
    client_name: Mapped[str | None] = mapped_column(String(255))
    client_email: Mapped[str | None] = mapped_column(String(255))

    # Risk and pricing
    policy_type: Mapped[str | None] = mapped_column(String(100))
    premium: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    sum_insured: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    underwriter: Mapped[str | None] = mapped_column(String(255), default=UNDERWRITER_TBD)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0"), comment="Percentage"
    )
    terms_conditions: Mapped[str | None] = mapped_column(Text)
    valid_until: Mapped[date | None] = mapped_column(Date, index=True)

    # Workflow
    workflow_stage: Mapped[str] = mapped_column(
        String(30), nullable=False, default=WorkflowStage.RFQ_GENERATION.value, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )

    # Conversion
    final_contract_url: Mapped[str | None] = mapped_column(String(1024))
    converted_to_policy: Mapped[str | None] = mapped_column(String(100), comment="Policy reference")

    # Relationships
    evaluated_quotes: Mapped[list[EvaluatedQuote]] = relationship(
        "EvaluatedQuote",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Quote number={self.quote_number} stage={self.workflow_stage} status={self.status}>"
