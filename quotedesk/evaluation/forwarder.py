"""Evaluation forwarder — pushes a scored candidate pool to the client.

Sequence:
  1. keep candidates with a response and a positive premium
     (their insurer keys must be unique)
  2. load the quote and check its stage can still reach client-selection
  3. freeze each candidate into an EvaluatedQuoteRecord (missing scores are
     computed against the whole pool)
  4. replace the quote's evaluation set
  5. quote-evaluation/sent, then auto-advance to client-selection/sent
  6. notify the client

Steps 1 to 5a abort the operation on failure. The auto-advance and the
notification are secondary: their failures are flagged on the result and
published as events.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable

from quotedesk.admin.events import EventRecorder
from quotedesk.config import settings
from quotedesk.db.repository import QuoteRepository, quote_repository
from quotedesk.errors import InvalidTransitionError, NoValidQuotesError, RemoteServiceError, ValidationError
from quotedesk.evaluation.rating import RatingEngine, rating_engine
from quotedesk.models import EvaluationSource, Quote, QuoteStatus, WorkflowStage
from quotedesk.models.base import utcnow
from quotedesk.notifications.client import NotificationClient, format_amount, notification_client
from quotedesk.schemas.events import EventType
from quotedesk.schemas.quotes import CandidateQuote, EvaluatedQuoteRecord, ForwardResult
from quotedesk.workflow.controller import WorkflowStageController, workflow_controller
from quotedesk.workflow.stages import parse_stage, position

logger = logging.getLogger(__name__)

UNKNOWN_INSURER = "Unknown Insurer"
NOTIFICATION_KIND = "quote_evaluation_complete"


def forwardable(pool: Iterable[CandidateQuote]) -> list[CandidateQuote]:
    """Candidates that responded with a positive premium, pool order kept."""
    return [c for c in pool if c.is_forwardable]


def duplicate_keys(candidates: Iterable[CandidateQuote]) -> list[str]:
    """Insurer keys that appear more than once, sorted."""
    counts = Counter(c.key for c in candidates)
    return sorted(key for key, n in counts.items() if n > 1)


def pick_best(records: list[EvaluatedQuoteRecord]) -> EvaluatedQuoteRecord:
    """Highest rating_score; the first one encountered wins a tie."""
    return max(records, key=lambda r: r.rating_score)


class EvaluationForwarder:
    """Validates, persists, and forwards one quote's evaluation."""

    def __init__(
        self,
        repository: QuoteRepository | None = None,
        controller: WorkflowStageController | None = None,
        notifier: NotificationClient | None = None,
        engine: RatingEngine | None = None,
    ) -> None:
        self.repository = repository or quote_repository
        self.controller = controller or workflow_controller
        self.notifier = notifier or notification_client
        self.engine = engine or rating_engine

    async def forward(
        self,
        quote_id: uuid.UUID,
        pool: list[CandidateQuote],
        evaluation_source: EvaluationSource | str = EvaluationSource.HUMAN,
    ) -> ForwardResult:
        """Forward the evaluation of ``pool`` for ``quote_id``.

        Raises:
            NoValidQuotesError: Nothing in the pool is forwardable. No I/O happened.
            ValidationError: Two forwardable candidates share an insurer key. No I/O happened.
            QuoteNotFoundError: No such quote.
            InvalidTransitionError: The quote is already past client-selection.
            RemoteServiceError: Persisting the set or the first transition failed.
        """
        try:
            source = EvaluationSource(evaluation_source)
        except ValueError:
            msg = f"Unknown evaluation source: {evaluation_source!r}"
            raise ValidationError(msg) from None

        valid = forwardable(pool)
        if not valid:
            logger.warning("Forward rejected for quote %s: no valid quotes", quote_id)
            raise NoValidQuotesError(quote_id)

        duplicates = duplicate_keys(valid)
        if duplicates:
            msg = f"Duplicate insurer keys in pool for quote {quote_id}: {duplicates}"
            raise ValidationError(msg)

        quote = await self.repository.get_quote(quote_id)
        first_stage = self._first_stage(quote)

        records = self._prepare(quote_id, valid, pool, source)
        await self.repository.replace_evaluation_set(quote_id, records)

        recorder = EventRecorder("evaluation.forwarder", quote_id, quote.organization_id)

        # Primary: failure propagates, the persisted set stays
        transition = await self.controller.progress_workflow(
            quote_id, first_stage, QuoteStatus.SENT, recorder=recorder,
        )
        final_stage = transition.to_stage

        stage_auto_advance_failed = False
        if final_stage is not WorkflowStage.CLIENT_SELECTION:
            try:
                transition = await self.controller.progress_workflow(
                    quote_id, WorkflowStage.CLIENT_SELECTION, QuoteStatus.SENT, recorder=recorder,
                )
                final_stage = transition.to_stage
            except (RemoteServiceError, InvalidTransitionError) as exc:
                stage_auto_advance_failed = True
                logger.warning("Auto-advance to client-selection failed for quote %s: %s", quote_id, exc)
                await recorder.record(EventType.STAGE_TRANSITION_FAILED, {
                    "from_stage": final_stage.value,
                    "to_stage": WorkflowStage.CLIENT_SELECTION.value,
                    "error": str(exc),
                })

        best = pick_best(records)
        notification_sent = await self._notify(quote, records, best, source, recorder)

        await recorder.record(EventType.EVALUATION_FORWARDED, {
            "evaluation_source": source.value,
            "quote_count": len(records),
            "best_insurer": best.insurer_name,
            "best_rating_score": best.rating_score,
            "workflow_stage": final_stage.value,
            "stage_auto_advance_failed": stage_auto_advance_failed,
            "notification_sent": notification_sent,
        })

        logger.info(
            "Forwarded %d quotes for quote %s (source=%s, stage=%s)",
            len(records),
            quote_id,
            source.value,
            final_stage.value,
        )

        return ForwardResult(
            quote_id=quote_id,
            evaluation_source=source,
            evaluated=records,
            best_quote=best,
            workflow_stage=final_stage,
            stage_auto_advance_failed=stage_auto_advance_failed,
            notification_sent=notification_sent,
            events=list(recorder.events),
        )

    # ── Steps ────────────────────────────────────────────────────────

    @staticmethod
    def _first_stage(quote: Quote) -> WorkflowStage:
        """Stage for the primary write; a quote at client-selection is refreshed in place."""
        current = parse_stage(quote.workflow_stage)
        if position(current) > position(WorkflowStage.CLIENT_SELECTION):
            msg = f"Quote {quote.id} is already at {current.value}; its evaluation can no longer be forwarded"
            raise InvalidTransitionError(
                msg, from_stage=current.value, to_stage=WorkflowStage.QUOTE_EVALUATION.value,
            )
        if position(current) <= position(WorkflowStage.QUOTE_EVALUATION):
            return WorkflowStage.QUOTE_EVALUATION
        return current

    def _prepare(
        self,
        quote_id: uuid.UUID,
        valid: list[CandidateQuote],
        pool: list[CandidateQuote],
        source: EvaluationSource,
    ) -> list[EvaluatedQuoteRecord]:
        evaluated_at = utcnow()
        records: list[EvaluatedQuoteRecord] = []
        for candidate in valid:
            rating = candidate.rating_score
            if rating is None:
                rating = self.engine.score(candidate, pool)
            records.append(EvaluatedQuoteRecord(
                quote_id=quote_id,
                insurer_key=candidate.key,
                insurer_id=candidate.insurer_id,
                insurer_name=candidate.insurer_name.strip() or UNKNOWN_INSURER,
                insurer_email=candidate.insurer_email,
                source=candidate.source,
                commission_split=candidate.commission_split,
                premium_quoted=candidate.premium_quoted,
                terms_conditions=candidate.terms_conditions,
                exclusions=list(candidate.exclusions),
                coverage_limits=dict(candidate.coverage_limits),
                remarks=candidate.remarks,
                document_url=candidate.document_url,
                response_received=True,
                rating_score=rating,
                ai_analysis=candidate.ai_analysis,
                evaluation_source=source,
                evaluated_at=evaluated_at,
            ))
        return records

    async def _notify(
        self,
        quote: Quote,
        records: list[EvaluatedQuoteRecord],
        best: EvaluatedQuoteRecord,
        source: EvaluationSource,
        recorder: EventRecorder,
    ) -> bool:
        if not quote.client_email:
            logger.warning("Quote %s has no client email; notification skipped", quote.id)
            await recorder.record(EventType.NOTIFICATION_FAILED, {
                "kind": NOTIFICATION_KIND,
                "reason": "no_recipient",
            })
            return False

        subject, body = compose_evaluation_message(quote, records, best)
        metadata = {
            "quote_count": len(records),
            "evaluation_source": source.value,
            "best_quote": {
                "insurer_name": best.insurer_name,
                "premium_quoted": str(best.premium_quoted),
                "rating_score": best.rating_score,
            },
        }
        try:
            sent = await self.notifier.send_notification(
                NOTIFICATION_KIND, quote.client_email, subject, body, metadata,
            )
        except Exception as exc:
            logger.exception("Notification for quote %s raised", quote.id)
            sent = False
            metadata["error"] = str(exc)

        await recorder.record(
            EventType.NOTIFICATION_SENT if sent else EventType.NOTIFICATION_FAILED,
            {"kind": NOTIFICATION_KIND, "recipient": quote.client_email, **metadata},
        )
        return sent


def compose_evaluation_message(
    quote: Quote,
    records: list[EvaluatedQuoteRecord],
    best: EvaluatedQuoteRecord,
) -> tuple[str, str]:
    """Subject and plain-text body of the "quotes are ready" email."""
    broker = settings.broker
    greeting = f"Hello {quote.client_name}," if quote.client_name else "Hello,"
    lines = [
        greeting,
        "",
        f"Your insurance quotes for {quote.quote_number} have been evaluated and are ready for review.",
        "",
        f"We have {len(records)} quotes from insurers for your consideration.",
        f"Highest rated: {best.insurer_name} at {format_amount(best.premium_quoted)} "
        f"(rating {best.rating_score}/100).",
        "",
        "Please log in to your portal to review and select your preferred option.",
    ]
    if broker.portal_url:
        lines.append(broker.portal_url)
    lines.extend(["", "Best regards,", broker.broker_name])
    return "Your Insurance Quotes Are Ready", "\n".join(lines)


# Module-level singleton
evaluation_forwarder = EvaluationForwarder()
