"""Quote persistence — canonical quotes and their evaluation sets.

Each public method runs in its own session and transaction, wrapped by the
retry policy. A committed write therefore survives a later failure in the
same logical operation, and a scan over many quotes can stop and resume
without leaving half-applied rows.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import date, timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quotedesk.db.engine import async_session_factory
from quotedesk.db.retry import call_with_retry
from quotedesk.errors import QuoteNotFoundError
from quotedesk.models import UNDERWRITER_TBD, EvaluatedQuote, Quote, QuoteStatus, WorkflowStage
from quotedesk.models.base import utcnow
from quotedesk.schemas.quotes import EvaluatedQuoteRecord

logger = logging.getLogger(__name__)


class QuoteRepository:
    """Reads and writes for the quotes and evaluated_quotes tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or async_session_factory

    # ── Quotes ───────────────────────────────────────────────────────

    async def get_quote(self, quote_id: uuid.UUID) -> Quote:
        """Load a quote. Raises QuoteNotFoundError when absent."""

        async def _load() -> Quote:
            async with self._session_factory() as db:
                return await self._require(db, quote_id)

        return await call_with_retry(_load, description=f"load quote {quote_id}")

    async def update_workflow(self, quote_id: uuid.UUID, stage: WorkflowStage, status: QuoteStatus) -> Quote:
        """Write stage + status and refresh updated_at."""

        async def _write() -> Quote:
            async with self._session_factory() as db:
                quote = await self._require(db, quote_id)
                quote.workflow_stage = stage.value
                quote.status = status.value
                quote.updated_at = utcnow()
                await db.commit()
                return quote

        return await call_with_retry(_write, description=f"progress workflow of quote {quote_id}")

    async def update_status(self, quote_id: uuid.UUID, status: QuoteStatus) -> Quote:
        """Write status only; the stage is left untouched."""

        async def _write() -> Quote:
            async with self._session_factory() as db:
                quote = await self._require(db, quote_id)
                quote.status = status.value
                quote.updated_at = utcnow()
                await db.commit()
                return quote

        return await call_with_retry(_write, description=f"update status of quote {quote_id}")

    async def mark_converted(self, quote_id: uuid.UUID, policy_id: str) -> Quote:
        """Record the policy a quote was converted into."""

        async def _write() -> Quote:
            async with self._session_factory() as db:
                quote = await self._require(db, quote_id)
                quote.status = QuoteStatus.ACCEPTED.value
                quote.converted_to_policy = policy_id
                quote.workflow_stage = WorkflowStage.CONVERTED.value
                quote.updated_at = utcnow()
                await db.commit()
                return quote

        return await call_with_retry(_write, description=f"convert quote {quote_id}")

    async def apply_backfill(self, quote_id: uuid.UUID, best: EvaluatedQuote) -> Quote:
        """Copy the chosen evaluation's offer onto the canonical quote."""

        async def _write() -> Quote:
            async with self._session_factory() as db:
                quote = await self._require(db, quote_id)
                quote.premium = best.premium_quoted
                quote.underwriter = best.insurer_name
                quote.commission_rate = best.commission_split
                quote.terms_conditions = best.terms_conditions or None
                quote.updated_at = utcnow()
                await db.commit()
                return quote

        return await call_with_retry(_write, description=f"backfill quote {quote_id}")

    # ── Evaluation sets ──────────────────────────────────────────────

    async def replace_evaluation_set(
        self,
        quote_id: uuid.UUID,
        records: Sequence[EvaluatedQuoteRecord],
    ) -> int:
        """Replace every evaluated row of a quote with ``records`` in one transaction.

        Upsert-by-quote: concurrent forwards for the same quote race and the
        later commit wins.
        """

        async def _write() -> int:
            async with self._session_factory() as db:
                await db.execute(delete(EvaluatedQuote).where(EvaluatedQuote.quote_id == quote_id))
                db.add_all([EvaluatedQuote(**record.to_row()) for record in records])
                await db.commit()
                return len(records)

        count = await call_with_retry(_write, description=f"save evaluation set of quote {quote_id}")
        logger.info("Evaluation set for quote %s replaced with %d rows", quote_id, count)
        return count

    async def best_evaluated_quote(self, quote_id: uuid.UUID) -> EvaluatedQuote | None:
        """Highest-rated responded evaluation row; ties go to the lowest premium."""

        async def _load() -> EvaluatedQuote | None:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(EvaluatedQuote)
                    .where(
                        EvaluatedQuote.quote_id == quote_id,
                        EvaluatedQuote.response_received.is_(True),
                    )
                    .order_by(
                        EvaluatedQuote.rating_score.desc(),
                        EvaluatedQuote.premium_quoted.asc(),
                        EvaluatedQuote.insurer_key.asc(),
                    )
                    .limit(1)
                )
                return result.scalar_one_or_none()

        return await call_with_retry(_load, description=f"load best evaluation of quote {quote_id}")

    # ── Scans ────────────────────────────────────────────────────────

    async def quotes_needing_backfill(self, organization_id: uuid.UUID | None = None) -> list[Quote]:
        """Completed quotes still carrying a zero premium or the TBD underwriter."""
        stmt = select(Quote).where(
            Quote.workflow_stage == WorkflowStage.COMPLETED.value,
            or_(Quote.premium == 0, Quote.underwriter == UNDERWRITER_TBD),
        )
        if organization_id is not None:
            stmt = stmt.where(Quote.organization_id == organization_id)
        return await self._list(stmt.order_by(Quote.created_at.asc()), "scan quotes needing backfill")

    async def finalized_quotes(self, organization_id: uuid.UUID) -> list[Quote]:
        """Quotes matching the conversion-eligibility predicate at the SQL level."""
        stmt = (
            select(Quote)
            .where(
                Quote.organization_id == organization_id,
                Quote.final_contract_url.isnot(None),
                Quote.workflow_stage == WorkflowStage.COMPLETED.value,
                Quote.converted_to_policy.is_(None),
                Quote.premium > 0,
                Quote.sum_insured > 0,
            )
            .order_by(Quote.created_at.desc())
        )
        return await self._list(stmt, f"list finalized quotes of organization {organization_id}")

    async def expiring_quotes(self, days_ahead: int, today: date | None = None) -> list[Quote]:
        """Sent quotes whose validity ends within ``days_ahead`` days."""
        horizon = (today or date.today()) + timedelta(days=days_ahead)
        stmt = (
            select(Quote)
            .where(
                Quote.valid_until <= horizon,
                Quote.status == QuoteStatus.SENT.value,
            )
            .order_by(Quote.valid_until.asc())
        )
        return await self._list(stmt, "list expiring quotes")

    async def quotes_by_stage(self, stage: WorkflowStage) -> list[Quote]:
        stmt = select(Quote).where(Quote.workflow_stage == stage.value).order_by(Quote.created_at.desc())
        return await self._list(stmt, f"list quotes at stage {stage.value}")

    # ── Internals ────────────────────────────────────────────────────

    async def _list(self, stmt, description: str) -> list[Quote]:  # noqa: ANN001
        async def _load() -> list[Quote]:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())

        return await call_with_retry(_load, description=description)

    @staticmethod
    async def _require(db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        quote = await db.get(Quote, quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return quote


# Module-level singleton
quote_repository = QuoteRepository()
