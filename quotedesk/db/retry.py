"""Bounded timeouts and limited retries for persistence and stage-progression calls.

Only transient failures (dropped connections, timeouts) are retried.
Anything else, and transient failures that outlive the attempt budget,
surface as RemoteServiceError. Notifications never go through here: they
are single-shot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from quotedesk.config import settings
from quotedesk.errors import RemoteServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT = (OperationalError, InterfaceError, TimeoutError, asyncio.TimeoutError)


async def call_with_retry(operation: Callable[[], Awaitable[T]], *, description: str) -> T:
    """Await ``operation()`` under the configured timeout and retry policy.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        description: Human-readable name used in logs and in the raised error.

    Raises:
        RemoteServiceError: The call failed permanently or ran out of attempts.
    """
    policy = settings.resilience
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(_TRANSIENT),
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.backoff_multiplier,
                min=policy.backoff_min,
                max=policy.backoff_max,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                result = await asyncio.wait_for(operation(), timeout=policy.operation_timeout)
    except (*_TRANSIENT, SQLAlchemyError) as exc:
        logger.error("%s failed: %s", description, exc)
        raise RemoteServiceError(description, exc) from exc
    return result
