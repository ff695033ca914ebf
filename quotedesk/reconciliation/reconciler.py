"""Data reconciler — repairs completed quotes before they are offered for conversion.

Completed quotes can still carry the placeholder premium (0) or underwriter
("TBD") they were created with. Backfill copies the offer of the best
responded evaluation onto the canonical record. Data problems never raise:
they become ``reconciliation.*`` events and log lines, and the caller simply
gets a shorter list.
"""

from __future__ import annotations

import logging
import uuid

from quotedesk.admin.events import EventRecorder
from quotedesk.db.repository import QuoteRepository, quote_repository
from quotedesk.errors import RemoteServiceError
from quotedesk.models import Quote
from quotedesk.reconciliation.eligibility import validation_failures
from quotedesk.schemas.events import EventType
from quotedesk.schemas.quotes import BackfillResult

logger = logging.getLogger(__name__)


class DataReconciler:
    """Backfill and eligibility listing over the canonical quote store."""

    def __init__(self, repository: QuoteRepository | None = None) -> None:
        self.repository = repository or quote_repository

    async def backfill(self, organization_id: uuid.UUID | None = None) -> BackfillResult:
        """Backfill every completed quote still missing premium or underwriter.

        Rows are handled one at a time, each in its own transaction, so a
        failure on one row is recorded and the scan moves on. Running it twice
        is a no-op the second time: repaired rows no longer match the scan.
        """
        recorder = EventRecorder("reconciliation.reconciler", organization_id=organization_id)
        quotes = await self.repository.quotes_needing_backfill(organization_id)
        result = BackfillResult(scanned=len(quotes))

        for quote in quotes:
            try:
                best = await self.repository.best_evaluated_quote(quote.id)
            except RemoteServiceError as exc:
                logger.warning("Backfill lookup failed for quote %s: %s", quote.id, exc)
                result.failed.append(quote.id)
                await recorder.record(
                    EventType.BACKFILL_FAILED,
                    {"quote_number": quote.quote_number, "error": str(exc)},
                    quote_id=quote.id,
                    organization_id=quote.organization_id,
                )
                continue

            if best is None:
                logger.warning("Quote %s has no responded evaluations; backfill skipped", quote.id)
                result.skipped.append(quote.id)
                await recorder.record(
                    EventType.BACKFILL_SKIPPED,
                    {"quote_number": quote.quote_number, "reason": "no_evaluated_quotes"},
                    quote_id=quote.id,
                    organization_id=quote.organization_id,
                )
                continue

            try:
                await self.repository.apply_backfill(quote.id, best)
            except RemoteServiceError as exc:
                logger.warning("Backfill write failed for quote %s: %s", quote.id, exc)
                result.failed.append(quote.id)
                await recorder.record(
                    EventType.BACKFILL_FAILED,
                    {"quote_number": quote.quote_number, "error": str(exc)},
                    quote_id=quote.id,
                    organization_id=quote.organization_id,
                )
                continue

            result.applied.append(quote.id)
            await recorder.record(
                EventType.BACKFILL_APPLIED,
                {
                    "quote_number": quote.quote_number,
                    "insurer_key": best.insurer_key,
                    "premium": str(best.premium_quoted),
                    "underwriter": best.insurer_name,
                    "rating_score": best.rating_score,
                },
                quote_id=quote.id,
                organization_id=quote.organization_id,
            )

        logger.info(
            "Backfill complete: scanned=%d applied=%d skipped=%d failed=%d",
            result.scanned,
            len(result.applied),
            len(result.skipped),
            len(result.failed),
        )
        result.events = list(recorder.events)
        return result

    async def list_conversion_eligible_quotes(self, organization_id: uuid.UUID) -> list[Quote]:
        """Quotes of an organization that may be converted into a policy.

        Backfill always runs first. Rows that still fail validation are dropped
        with a ``reconciliation.quote_excluded`` event.
        """
        await self.backfill(organization_id)

        recorder = EventRecorder("reconciliation.reconciler", organization_id=organization_id)
        eligible: list[Quote] = []
        for quote in await self.repository.finalized_quotes(organization_id):
            failures = validation_failures(quote)
            if failures:
                logger.warning("Quote %s excluded from conversion list: %s", quote.id, ", ".join(failures))
                await recorder.record(
                    EventType.QUOTE_EXCLUDED,
                    {"quote_number": quote.quote_number, "failures": failures},
                    quote_id=quote.id,
                )
                continue
            eligible.append(quote)

        logger.info("Organization %s has %d conversion-eligible quotes", organization_id, len(eligible))
        return eligible


# Module-level singleton
data_reconciler = DataReconciler()
