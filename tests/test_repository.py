"""Tests for quotedesk/db/repository.py — session handling against a mock AsyncSession."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_quote
from sqlalchemy.exc import OperationalError

from quotedesk.db.repository import QuoteRepository
from quotedesk.errors import QuoteNotFoundError, RemoteServiceError
from quotedesk.models import EvaluatedQuote, QuoteStatus, WorkflowStage
from quotedesk.models.enums import CandidateSource, EvaluationSource
from quotedesk.schemas.quotes import EvaluatedQuoteRecord

# ── Helpers ──────────────────────────────────────────────────────────


def _make_db(get_result=None):
    """Build a mock AsyncSession."""
    db = AsyncMock()
    db.get = AsyncMock(return_value=get_result)
    db.add_all = MagicMock()
    return db


def _make_factory(db):
    """Session factory whose sessions are async context managers yielding ``db``."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = db
    factory.return_value.__aexit__.return_value = False
    return factory


def _make_record(quote_id, key: str, score: int) -> EvaluatedQuoteRecord:
    return EvaluatedQuoteRecord(
        quote_id=quote_id,
        insurer_key=key,
        insurer_name=key.title(),
        source=CandidateSource.DISPATCHED,
        commission_split=Decimal("10"),
        premium_quoted=Decimal("1000000"),
        rating_score=score,
        evaluation_source=EvaluationSource.HUMAN,
        evaluated_at=datetime(2026, 10, 2, tzinfo=UTC),
    )


# ── Single-quote operations ──────────────────────────────────────────


class TestQuoteReads:
    @pytest.mark.asyncio
    async def test_get_quote(self):
        quote = make_quote()
        db = _make_db(quote)
        repo = QuoteRepository(_make_factory(db))

        assert await repo.get_quote(quote.id) is quote

    @pytest.mark.asyncio
    async def test_missing_quote(self):
        repo = QuoteRepository(_make_factory(_make_db(None)))
        with pytest.raises(QuoteNotFoundError):
            await repo.get_quote(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_connection_failure_wrapped(self):
        db = _make_db()
        db.get.side_effect = OperationalError("SELECT", {}, Exception("server closed the connection"))
        repo = QuoteRepository(_make_factory(db))

        with pytest.raises(RemoteServiceError):
            await repo.get_quote(uuid.uuid4())
        assert db.get.await_count == 3


class TestQuoteWrites:
    @pytest.mark.asyncio
    async def test_update_workflow(self):
        quote = make_quote(updated_at=datetime(2020, 1, 1, tzinfo=UTC))
        db = _make_db(quote)
        repo = QuoteRepository(_make_factory(db))

        await repo.update_workflow(quote.id, WorkflowStage.CLIENT_SELECTION, QuoteStatus.SENT)

        assert quote.workflow_stage == "client-selection"
        assert quote.status == "sent"
        assert quote.updated_at > datetime(2020, 1, 1, tzinfo=UTC)
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_converted(self):
        quote = make_quote(workflow_stage="completed")
        db = _make_db(quote)

        await QuoteRepository(_make_factory(db)).mark_converted(quote.id, "POL-9")

        assert quote.converted_to_policy == "POL-9"
        assert quote.status == "accepted"
        assert quote.workflow_stage == "converted"

    @pytest.mark.asyncio
    async def test_apply_backfill_blank_terms_become_null(self):
        quote = make_quote(workflow_stage="completed", terms_conditions="old")
        db = _make_db(quote)
        best = SimpleNamespace(
            premium_quoted=Decimal("1800000"),
            insurer_name="Custodian",
            commission_split=Decimal("15"),
            terms_conditions="",
        )

        await QuoteRepository(_make_factory(db)).apply_backfill(quote.id, best)

        assert quote.premium == Decimal("1800000")
        assert quote.underwriter == "Custodian"
        assert quote.commission_rate == Decimal("15")
        assert quote.terms_conditions is None
        db.commit.assert_awaited_once()


# ── Evaluation sets ──────────────────────────────────────────────────


class TestEvaluationSets:
    @pytest.mark.asyncio
    async def test_replace_deletes_then_inserts_in_one_commit(self):
        quote_id = uuid.uuid4()
        db = _make_db()
        records = [_make_record(quote_id, "leadway", 83), _make_record(quote_id, "axa", 39)]

        count = await QuoteRepository(_make_factory(db)).replace_evaluation_set(quote_id, records)

        assert count == 2
        db.execute.assert_awaited_once()
        rows = db.add_all.call_args.args[0]
        assert all(isinstance(r, EvaluatedQuote) for r in rows)
        assert [r.insurer_key for r in rows] == ["leadway", "axa"]
        assert rows[0].source == "dispatched"
        assert rows[0].evaluation_source == "human"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_best_evaluated_quote(self):
        best = SimpleNamespace(insurer_name="Leadway")
        result = MagicMock()
        result.scalar_one_or_none.return_value = best
        db = _make_db()
        db.execute = AsyncMock(return_value=result)

        assert await QuoteRepository(_make_factory(db)).best_evaluated_quote(uuid.uuid4()) is best


# ── Scans ────────────────────────────────────────────────────────────


class TestScans:
    def _listing(self, rows):
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        db = _make_db()
        db.execute = AsyncMock(return_value=result)
        return db

    @pytest.mark.asyncio
    async def test_expiring_quotes(self):
        quote = make_quote(status="sent", valid_until=date(2026, 10, 20))
        db = self._listing([quote])

        rows = await QuoteRepository(_make_factory(db)).expiring_quotes(7, today=date(2026, 10, 18))

        assert rows == [quote]
        db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_quotes_needing_backfill_returns_list(self):
        quotes = [make_quote(workflow_stage="completed"), make_quote(workflow_stage="completed")]
        db = self._listing(tuple(quotes))

        rows = await QuoteRepository(_make_factory(db)).quotes_needing_backfill()

        assert rows == quotes
