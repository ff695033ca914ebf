"""In-process event bus for SystemEvents.

Engine operations publish through :func:`emit` (queued, drained by one
background worker) and collect what they published with an
:class:`EventRecorder`, so the same events reach the audit log, the alert
engine, and the caller's result object.

    subscribe(audit_on_event)                                  # every event
    subscribe(alert_engine.on_event, alert_engine.watched_types)

A failing subscriber is logged and never affects the publisher or the
other subscribers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Coroutine
from typing import Any

from quotedesk.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Subscriber registry plus the queue and worker that feed it."""

    def __init__(self) -> None:
        self.global_handlers: list[EventHandler] = []
        self.typed_handlers: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self.queue: asyncio.Queue[SystemEvent] | None = None
        self.worker: asyncio.Task[None] | None = None

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self.global_handlers, *self.typed_handlers.get(event_type, [])]

    async def dispatch(self, event: SystemEvent) -> None:
        handlers = self.handlers_for(event.event_type)
        if handlers:
            await asyncio.gather(*(_isolated(handler, event) for handler in handlers))

    def ensure_worker(self) -> asyncio.Queue[SystemEvent]:
        if self.queue is None:
            self.queue = asyncio.Queue()
        if self.worker is None or self.worker.done():
            self.worker = asyncio.create_task(self._drain(self.queue), name="quotedesk-event-worker")
            logger.info("Event worker started")
        return self.queue

    async def _drain(self, queue: asyncio.Queue[SystemEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.dispatch(event)
            finally:
                queue.task_done()

    async def shutdown(self) -> None:
        """Deliver whatever is queued, then stop the worker."""
        if self.queue is not None and self.worker is not None and not self.worker.done():
            await self.queue.join()
        if self.worker is not None:
            self.worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.worker
        self.queue = None
        self.worker = None


async def _isolated(handler: EventHandler, event: SystemEvent) -> None:
    try:
        await handler(event)
    except Exception:
        logger.exception("Subscriber %s failed on %s", getattr(handler, "__name__", handler), event.event_type.value)


_bus = EventBus()


# ── Public API ───────────────────────────────────────────────────────


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register ``handler`` for ``event_types``, or for every event when None."""
    if event_types is None:
        _bus.global_handlers.append(handler)
    else:
        for event_type in event_types:
            _bus.typed_handlers[event_type].append(handler)
    logger.info(
        "Subscribed %s to %s",
        getattr(handler, "__name__", handler),
        "all events" if event_types is None else [t.value for t in event_types],
    )


def unsubscribe(handler: EventHandler) -> None:
    if handler in _bus.global_handlers:
        _bus.global_handlers.remove(handler)
    for handlers in _bus.typed_handlers.values():
        if handler in handlers:
            handlers.remove(handler)


async def emit(event: SystemEvent) -> None:
    """Queue ``event`` for the background worker; returns before delivery."""
    await _bus.ensure_worker().put(event)
    logger.debug("Event queued: %s (quote=%s)", event.event_type.value, event.quote_id)


async def emit_nowait(event: SystemEvent) -> None:
    """Deliver ``event`` inline, bypassing the queue (startup and shutdown)."""
    await _bus.dispatch(event)


async def start_event_system() -> None:
    _bus.ensure_worker()
    logger.info(
        "Event system started: %d global, %d typed subscribers",
        len(_bus.global_handlers),
        sum(len(h) for h in _bus.typed_handlers.values()),
    )


async def stop_event_system() -> None:
    await _bus.shutdown()
    logger.info("Event system stopped")


class EventRecorder:
    """Publishes events on behalf of one operation and keeps what it published.

    Engine operations return ``recorder.events`` alongside their result so
    callers see the same domain events the subscribers receive.
    """

    def __init__(
        self,
        source_module: str,
        quote_id: uuid.UUID | None = None,
        organization_id: uuid.UUID | None = None,
    ) -> None:
        self.source_module = source_module
        self.quote_id = quote_id
        self.organization_id = organization_id
        self.events: list[SystemEvent] = []

    async def record(
        self,
        event_type: EventType,
        data: dict[str, Any] | None = None,
        *,
        quote_id: uuid.UUID | None = None,
        organization_id: uuid.UUID | None = None,
    ) -> SystemEvent:
        event = SystemEvent(
            event_type=event_type,
            quote_id=quote_id or self.quote_id,
            organization_id=organization_id or self.organization_id,
            data=data or {},
            source_module=self.source_module,
        )
        await emit(event)
        self.events.append(event)
        return event
