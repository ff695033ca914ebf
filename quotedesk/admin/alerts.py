"""Operator alerts for events that need a human to look at a quote.

Failures the engine tolerates (auto-advance, client notification, backfill)
and the integrity warnings of the reconciler only show up in logs and in the
returned events. This engine turns them into emails to the addresses in
``OPS_ALERT_EMAILS``. Delivery is injected with :meth:`AlertEngine.set_send_fn`
and wired to the notification client at startup.

Never raises into the event bus.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from quotedesk.config import settings
from quotedesk.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str, str], Coroutine[Any, Any, Any]]

MISSING = "n/a"


@dataclass(frozen=True)
class AlertRule:
    name: str
    event_types: list[EventType]
    condition: Callable[[SystemEvent], bool]
    template: str  # str.format_map over event data plus quote_id/source_module
    level: str  # "info", "warning", "critical"


def _no_recipient(event: SystemEvent) -> bool:
    return event.data.get("reason") == "no_recipient"


ALERT_RULES: list[AlertRule] = [
    AlertRule(
        name="Client notification failed",
        event_types=[EventType.NOTIFICATION_FAILED],
        condition=lambda e: not _no_recipient(e),
        template="Notification '{kind}' to {recipient} for quote {quote_id} was not delivered.\nReason: {error}",
        level="warning",
    ),
    AlertRule(
        name="Client email missing",
        event_types=[EventType.NOTIFICATION_FAILED],
        condition=_no_recipient,
        template="Quote {quote_id} was forwarded but the client has no email address on file.",
        level="info",
    ),
    AlertRule(
        name="Stage auto-advance failed",
        event_types=[EventType.STAGE_TRANSITION_FAILED],
        condition=lambda _: True,
        template="Quote {quote_id} stayed at {from_stage}; moving it to {to_stage} failed.\nError: {error}",
        level="warning",
    ),
    AlertRule(
        name="Quote excluded from conversion",
        event_types=[EventType.QUOTE_EXCLUDED],
        condition=lambda _: True,
        template="Quote {quote_number} ({quote_id}) is finalized but still invalid.\nFailing fields: {failures}",
        level="warning",
    ),
    AlertRule(
        name="Backfill failed",
        event_types=[EventType.BACKFILL_FAILED],
        condition=lambda _: True,
        template="Backfill of quote {quote_number} ({quote_id}) failed.\nError: {error}",
        level="critical",
    ),
    AlertRule(
        name="System error",
        event_types=[EventType.SYSTEM_ERROR],
        condition=lambda _: True,
        template="Error in {source_module}: {error}",
        level="critical",
    ),
]


class _AlertContext(dict):
    """Template values; absent keys render as ``n/a`` instead of failing."""

    def __missing__(self, key: str) -> str:
        return MISSING


def alert_context(event: SystemEvent) -> _AlertContext:
    ctx = _AlertContext(
        {key: ", ".join(map(str, value)) if isinstance(value, list) else value for key, value in event.data.items()},
    )
    if event.quote_id is not None:
        ctx.setdefault("quote_id", str(event.quote_id))
    if event.source_module is not None:
        ctx.setdefault("source_module", event.source_module)
    return ctx


class AlertEngine:
    """Matches events against rules and emails every operator address."""

    def __init__(self, rules: list[AlertRule] | None = None) -> None:
        self.rules = ALERT_RULES if rules is None else rules
        self._send_fn: SendFn | None = None

    @property
    def watched_types(self) -> list[EventType]:
        """Event types to subscribe this engine to."""
        return sorted({t for rule in self.rules for t in rule.event_types}, key=lambda t: t.value)

    def set_send_fn(self, fn: SendFn) -> None:
        """Inject delivery: ``await fn(recipient, subject, body)``."""
        self._send_fn = fn

    async def on_event(self, event: SystemEvent) -> None:
        if self._send_fn is None:
            return

        for rule in self.rules:
            if event.event_type not in rule.event_types:
                continue
            try:
                matched = rule.condition(event)
            except Exception:
                logger.exception("Alert rule condition failed: %s", rule.name)
                continue
            if matched:
                body = rule.template.format_map(alert_context(event))
                await self._deliver(f"[{rule.level.upper()}] {rule.name}", body)

    async def _deliver(self, subject: str, body: str) -> None:
        for recipient in settings.alerts.recipients:
            try:
                await self._send_fn(recipient, subject, body)
            except Exception:
                logger.exception("Alert '%s' not delivered to %s", subject, recipient)


# Module-level singleton
alert_engine = AlertEngine()
