"""QuoteDesk API process.

Usage:
    python -m quotedesk.main
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quotedesk import __version__
from quotedesk.admin.alerts import alert_engine
from quotedesk.admin.events import (
    EventHandler,
    emit,
    emit_nowait,
    start_event_system,
    stop_event_system,
    subscribe,
    unsubscribe,
)
from quotedesk.api.routes import register_error_handlers, router
from quotedesk.config import settings
from quotedesk.db.engine import db_lifespan
from quotedesk.notifications.client import notification_client
from quotedesk.schemas.events import EventType, SystemEvent
from quotedesk.security.audit import audit_on_event


def configure_logging() -> None:
    """stdlib logging for every module logger; structlog renders JSON in production."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    renderer = structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()
logger = logging.getLogger(__name__)


async def send_ops_alert(recipient: str, subject: str, body: str) -> None:
    await notification_client.send_notification("ops_alert", recipient, subject, body)


def register_subscribers() -> list[EventHandler]:
    """Attach the audit log, and the alert engine when operators are configured."""
    subscribe(audit_on_event)
    handlers: list[EventHandler] = [audit_on_event]

    if settings.alerts.recipients:
        alert_engine.set_send_fn(send_ops_alert)
        subscribe(alert_engine.on_event, event_types=alert_engine.watched_types)
        handlers.append(alert_engine.on_event)
        logger.info("Operator alerts go to %d recipients", len(settings.alerts.recipients))
    else:
        logger.warning("OPS_ALERT_EMAILS not set; operator alerts disabled")
    return handlers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting QuoteDesk %s (env=%s)", __version__, settings.environment)

    async with db_lifespan():
        await start_event_system()
        handlers = register_subscribers()
        await emit_nowait(SystemEvent(
            event_type=EventType.SYSTEM_STARTUP,
            data={"environment": settings.environment, "version": __version__},
            source_module="main",
        ))
        try:
            yield
        finally:
            await emit_nowait(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
            await stop_event_system()
            for handler in handlers:
                unsubscribe(handler)

    logger.info("QuoteDesk stopped")


app = FastAPI(
    title="QuoteDesk API",
    description="Quote evaluation and workflow reconciliation for insurance brokers",
    version=__version__,
    lifespan=lifespan,
)
app.include_router(router)
register_error_handlers(app)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    await emit(SystemEvent(
        event_type=EventType.SYSTEM_ERROR,
        data={"error": f"{type(exc).__name__}: {exc}", "path": request.url.path},
        source_module="main",
    ))
    return JSONResponse(status_code=500, content={"error": "InternalError", "detail": "Internal server error"})


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "environment": settings.environment,
        "broker_name": settings.broker.broker_name,
    }


if __name__ == "__main__":
    uvicorn.run(
        "quotedesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
