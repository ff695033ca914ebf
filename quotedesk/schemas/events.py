"""Domain events published by the evaluation, workflow, and reconciliation code.

Event type values are dotted ``<area>.<what happened>`` strings and are what
lands in ``audit_log.event_type``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from quotedesk.models.base import utcnow


class EventType(str, Enum):
    # Evaluation
    EVALUATION_FORWARDED = "quote.evaluation_forwarded"
    AI_EVALUATED = "quote.ai_evaluated"

    # Workflow
    STAGE_CHANGED = "quote.stage_changed"
    STAGE_TRANSITION_FAILED = "quote.stage_transition_failed"
    STATUS_CHANGED = "quote.status_changed"
    QUOTE_CONVERTED = "quote.converted"

    # Client notifications
    NOTIFICATION_SENT = "notification.sent"
    NOTIFICATION_FAILED = "notification.failed"

    # Data integrity warnings; published, never raised
    BACKFILL_APPLIED = "reconciliation.backfill_applied"
    BACKFILL_SKIPPED = "reconciliation.backfill_skipped"
    BACKFILL_FAILED = "reconciliation.backfill_failed"
    QUOTE_EXCLUDED = "reconciliation.quote_excluded"

    # Process lifecycle
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"
    SYSTEM_ERROR = "system.error"


class SystemEvent(BaseModel):
    """One immutable fact about a quote (or the process).

    ``quote_id`` and ``organization_id`` are empty for lifecycle events.
    ``data`` carries the event-specific payload, e.g. ``from_stage`` /
    ``to_stage`` for stage changes or ``failures`` for exclusions.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=utcnow)

    quote_id: uuid.UUID | None = None
    organization_id: uuid.UUID | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    data: dict[str, Any] = Field(default_factory=dict)
    source_module: str | None = None
