"""Initial schema — quotes, evaluated_quotes, audit_log.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("quote_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("actor_id", sa.String(100), comment="Broker user id or 'system'"),
        sa.Column("actor_role", sa.String(50), comment="broker, system, client"),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "quotes",
        sa.Column("quote_number", sa.String(50), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("client_name", sa.String(255)),
        sa.Column("client_email", sa.String(255)),
        sa.Column("policy_type", sa.String(100)),
        sa.Column("premium", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("sum_insured", sa.Numeric(16, 2), nullable=False, server_default="0"),
        sa.Column("underwriter", sa.String(255), server_default="TBD"),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False, server_default="0", comment="Percentage"),
        sa.Column("terms_conditions", sa.Text()),
        sa.Column("valid_until", sa.Date(), index=True),
        sa.Column("workflow_stage", sa.String(30), nullable=False, server_default="rfq-generation", index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("final_contract_url", sa.String(1024)),
        sa.Column("converted_to_policy", sa.String(100), comment="Policy reference"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quote_number"),
        sa.CheckConstraint("premium >= 0", name="ck_quotes_premium_non_negative"),
        sa.CheckConstraint("sum_insured >= 0", name="ck_quotes_sum_insured_non_negative"),
    )

    # ── Dependent tables ───────────────────────────────────────────────

    op.create_table(
        "evaluated_quotes",
        sa.Column("quote_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("insurer_key", sa.String(100), nullable=False, comment="Insurer id or manual key"),
        sa.Column("insurer_id", sa.String(100)),
        sa.Column("insurer_name", sa.String(255), nullable=False),
        sa.Column("insurer_email", sa.String(255)),
        sa.Column("source", sa.String(20), nullable=False, comment="dispatched or manual"),
        sa.Column("commission_split", sa.Numeric(5, 2), nullable=False),
        sa.Column("premium_quoted", sa.Numeric(14, 2), nullable=False),
        sa.Column("terms_conditions", sa.Text(), nullable=False),
        sa.Column("exclusions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("coverage_limits", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("remarks", sa.Text()),
        sa.Column("document_url", sa.String(1024)),
        sa.Column("response_received", sa.Boolean(), nullable=False),
        sa.Column("rating_score", sa.Integer(), nullable=False, index=True),
        sa.Column("ai_analysis", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("evaluation_source", sa.String(10), nullable=False, comment="human or ai"),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quote_id", "insurer_key", name="uq_evaluated_quotes_quote_insurer"),
    )


def downgrade() -> None:
    op.drop_table("evaluated_quotes")
    op.drop_table("quotes")
    op.drop_table("audit_log")
