"""Shared fixtures: no real event bus, no backoff sleeps."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from quotedesk.config import settings
from quotedesk.errors import QuoteNotFoundError, RemoteServiceError
from quotedesk.models import Quote


@pytest.fixture(autouse=True)
def mock_emit(request):
    """Replace the bus publisher so engine operations never start a worker."""
    if request.node.get_closest_marker("real_event_bus"):
        yield None
        return
    with patch("quotedesk.admin.events.emit", new_callable=AsyncMock) as emit:
        yield emit


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep the retry policy but drop the waits between attempts."""
    monkeypatch.setattr(settings.resilience, "backoff_multiplier", 0)
    monkeypatch.setattr(settings.resilience, "backoff_min", 0)
    monkeypatch.setattr(settings.resilience, "backoff_max", 0)
    monkeypatch.setattr(settings.resilience, "max_attempts", 3)


def make_quote(**overrides) -> Quote:
    """Build a detached Quote row with sane defaults."""
    fields = {
        "id": uuid.uuid4(),
        "quote_number": "QT-2026-0001",
        "organization_id": uuid.uuid4(),
        "client_name": "Adaeze Okafor",
        "client_email": "adaeze@example.com",
        "policy_type": "motor",
        "premium": Decimal("0"),
        "sum_insured": Decimal("25000000"),
        "underwriter": "TBD",
        "commission_rate": Decimal("0"),
        "workflow_stage": "quote-evaluation",
        "status": "draft",
        "payment_status": "pending",
        "final_contract_url": None,
        "converted_to_policy": None,
        "valid_until": date(2026, 12, 31),
        "created_at": datetime(2026, 10, 1, tzinfo=UTC),
        "updated_at": datetime(2026, 10, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return Quote(**fields)


class InMemoryQuoteRepository:
    """Dict-backed stand-in for QuoteRepository with failure injection.

    ``fail_on`` maps a method name to the exception it raises;
    ``fail_transition_to`` makes update_workflow fail for specific stages.
    """

    def __init__(self, *quotes: Quote) -> None:
        self.quotes: dict[uuid.UUID, Quote] = {q.id: q for q in quotes}
        self.evaluation_sets: dict[uuid.UUID, list] = {}
        self.best: dict[uuid.UUID, object] = {}
        self.fail_on: dict[str, BaseException] = {}
        self.fail_transition_to: set = set()
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def _require(self, quote_id: uuid.UUID) -> Quote:
        if quote_id not in self.quotes:
            raise QuoteNotFoundError(quote_id)
        return self.quotes[quote_id]

    async def get_quote(self, quote_id):
        self._enter("get_quote")
        return self._require(quote_id)

    async def update_workflow(self, quote_id, stage, status):
        self._enter("update_workflow")
        if stage in self.fail_transition_to:
            raise RemoteServiceError(f"progress workflow of quote {quote_id}")
        quote = self._require(quote_id)
        quote.workflow_stage = stage.value
        quote.status = status.value
        quote.updated_at = datetime.now(UTC)
        return quote

    async def update_status(self, quote_id, status):
        self._enter("update_status")
        quote = self._require(quote_id)
        quote.status = status.value
        quote.updated_at = datetime.now(UTC)
        return quote

    async def mark_converted(self, quote_id, policy_id):
        self._enter("mark_converted")
        quote = self._require(quote_id)
        quote.status = "accepted"
        quote.converted_to_policy = policy_id
        quote.workflow_stage = "converted"
        return quote

    async def apply_backfill(self, quote_id, best):
        self._enter("apply_backfill")
        quote = self._require(quote_id)
        quote.premium = best.premium_quoted
        quote.underwriter = best.insurer_name
        quote.commission_rate = best.commission_split
        quote.terms_conditions = best.terms_conditions or None
        return quote

    async def replace_evaluation_set(self, quote_id, records):
        self._enter("replace_evaluation_set")
        self.evaluation_sets[quote_id] = list(records)
        return len(records)

    async def best_evaluated_quote(self, quote_id):
        self._enter("best_evaluated_quote")
        return self.best.get(quote_id)

    async def quotes_needing_backfill(self, organization_id=None):
        self._enter("quotes_needing_backfill")
        return [
            q for q in self.quotes.values()
            if q.workflow_stage == "completed"
            and (q.premium == 0 or q.underwriter == "TBD")
            and (organization_id is None or q.organization_id == organization_id)
        ]

    async def finalized_quotes(self, organization_id):
        self._enter("finalized_quotes")
        return [
            q for q in self.quotes.values()
            if q.organization_id == organization_id
            and q.final_contract_url is not None
            and q.workflow_stage == "completed"
            and q.converted_to_policy is None
        ]

    async def expiring_quotes(self, days_ahead, today=None):
        self._enter("expiring_quotes")
        return [q for q in self.quotes.values() if q.status == "sent"]

    async def quotes_by_stage(self, stage):
        self._enter("quotes_by_stage")
        return [q for q in self.quotes.values() if q.workflow_stage == stage.value]

    @property
    def writes(self) -> list[str]:
        reads = {"get_quote", "best_evaluated_quote", "quotes_needing_backfill", "finalized_quotes",
                 "expiring_quotes", "quotes_by_stage"}
        return [c for c in self.calls if c not in reads]
