"""Audit trail — every SystemEvent becomes one ``audit_log`` row.

Support reads this table to explain how a quote reached its current
state: which stage writes happened, what was forwarded, and which rows the
reconciler skipped or excluded. The subscriber is global and never raises.
"""

from __future__ import annotations

import logging

from quotedesk.db.engine import async_session_factory
from quotedesk.models.audit import AuditLog
from quotedesk.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


def audit_row(event: SystemEvent) -> AuditLog:
    """Map an event onto the audit table; the emitting module is kept in ``data``."""
    return AuditLog(
        event_type=event.event_type.value,
        quote_id=event.quote_id,
        organization_id=event.organization_id,
        actor_id=event.actor_id,
        actor_role=event.actor_role,
        data={**event.data, "source_module": event.source_module},
    )


async def audit_on_event(event: SystemEvent) -> None:
    try:
        async with async_session_factory() as db:
            db.add(audit_row(event))
            await db.commit()
    except Exception:
        # The operation that emitted the event has already completed
        logger.exception("Audit write lost for %s (quote=%s)", event.event_type.value, event.quote_id)
