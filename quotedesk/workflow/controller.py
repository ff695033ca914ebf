"""Workflow stage controller for canonical quotes.

The only code path that mutates ``workflow_stage``. Validates names and the
forward-only order, writes through the repository (which applies the retry
policy), and emits a stage-change event per write.
"""

from __future__ import annotations

import logging
import uuid

from quotedesk.admin.events import EventRecorder
from quotedesk.db.repository import QuoteRepository, quote_repository
from quotedesk.errors import ConversionNotAllowedError, InvalidTransitionError
from quotedesk.models import Quote, QuoteStatus, WorkflowStage
from quotedesk.reconciliation.eligibility import validation_failures
from quotedesk.schemas.events import EventType
from quotedesk.schemas.quotes import StageTransition
from quotedesk.workflow.stages import check_transition, parse_stage, parse_status

logger = logging.getLogger(__name__)


class WorkflowStageController:
    """Moves quotes along rfq-generation → … → converted."""

    def __init__(self, repository: QuoteRepository | None = None) -> None:
        self.repository = repository or quote_repository

    async def progress_workflow(
        self,
        quote_id: uuid.UUID,
        stage: WorkflowStage | str,
        status: QuoteStatus | str,
        recorder: EventRecorder | None = None,
    ) -> StageTransition:
        """Write stage + status for a quote.

        Args:
            quote_id: Quote to update.
            stage: Target stage; may equal the current one (status refresh).
            status: New quote status.
            recorder: Collects the emitted event for the calling operation.

        Raises:
            InvalidTransitionError: Unknown stage/status, a backward move, or a
                move into ``converted`` (use :meth:`convert_to_policy`).
            QuoteNotFoundError: No such quote.
            RemoteServiceError: The write failed after retries.
        """
        target = parse_stage(stage)
        new_status = parse_status(status)

        quote = await self.repository.get_quote(quote_id)
        current = parse_stage(quote.workflow_stage)
        if target is WorkflowStage.CONVERTED and current is not WorkflowStage.CONVERTED:
            msg = "Quotes enter the converted stage only through policy conversion"
            raise InvalidTransitionError(msg, from_stage=current.value, to_stage=target.value)
        check_transition(current, target)

        updated = await self.repository.update_workflow(quote_id, target, new_status)

        logger.info(
            "Stage transition: %s --> %s status=%s (quote=%s)",
            current.value,
            target.value,
            new_status.value,
            quote_id,
        )

        recorder = recorder or EventRecorder("workflow.controller", quote_id, quote.organization_id)
        await recorder.record(EventType.STAGE_CHANGED, {
            "from_stage": current.value,
            "to_stage": target.value,
            "status": new_status.value,
        })

        return StageTransition(
            quote_id=quote_id,
            from_stage=current,
            to_stage=target,
            status=new_status,
            updated_at=updated.updated_at,
        )

    async def update_status(
        self,
        quote_id: uuid.UUID,
        status: QuoteStatus | str,
        recorder: EventRecorder | None = None,
    ) -> Quote:
        """Change status only; the stage is left where it is."""
        new_status = parse_status(status)
        quote = await self.repository.get_quote(quote_id)
        if parse_stage(quote.workflow_stage) is WorkflowStage.CONVERTED:
            msg = f"Quote {quote_id} is converted; its status can no longer change"
            raise InvalidTransitionError(msg, from_stage=WorkflowStage.CONVERTED.value)

        previous_status = quote.status
        updated = await self.repository.update_status(quote_id, new_status)
        logger.info("Status of quote %s: %s --> %s", quote_id, previous_status, new_status.value)

        recorder = recorder or EventRecorder("workflow.controller", quote_id, quote.organization_id)
        await recorder.record(EventType.STATUS_CHANGED, {
            "from_status": previous_status,
            "to_status": new_status.value,
        })
        return updated

    async def convert_to_policy(
        self,
        quote_id: uuid.UUID,
        policy_id: str,
        recorder: EventRecorder | None = None,
    ) -> Quote:
        """Mark an eligible quote as converted into ``policy_id``.

        Raises:
            ConversionNotAllowedError: The quote fails the eligibility predicate.
        """
        if not policy_id or not policy_id.strip():
            msg = "policy_id is required"
            raise ConversionNotAllowedError(quote_id, [msg])

        quote = await self.repository.get_quote(quote_id)
        failures = validation_failures(quote)
        if failures:
            raise ConversionNotAllowedError(quote_id, failures)

        updated = await self.repository.mark_converted(quote_id, policy_id.strip())
        logger.info("Quote %s converted to policy %s", quote_id, policy_id)

        recorder = recorder or EventRecorder("workflow.controller", quote_id, quote.organization_id)
        await recorder.record(EventType.QUOTE_CONVERTED, {
            "policy_id": updated.converted_to_policy,
            "premium": str(updated.premium),
            "underwriter": updated.underwriter,
        })
        return updated


# Module-level singleton
workflow_controller = WorkflowStageController()
