"""Async httpx client for the outbound notification gateway.

Sends are single-shot: one request under the configured timeout, never
retried. Failures are logged and reported as ``False`` so callers can treat
delivery as best-effort.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from quotedesk.config import settings

logger = logging.getLogger(__name__)


class NotificationClient:
    """Thin async wrapper around the notification gateway.

    Endpoint: POST {base_url}
    Auth: Bearer token
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cfg = settings.notifications
        self._base_url = (cfg.notification_api_url if base_url is None else base_url).rstrip("/")
        self._api_key = cfg.notification_api_key if api_key is None else api_key
        self._sender = cfg.notification_sender
        self._timeout = httpx.Timeout(timeout or cfg.notification_timeout, connect=5.0)
        self._transport = transport

    @property
    def _bypass_mode(self) -> bool:
        """Return True if no gateway is configured (dev/test bypass)."""
        return not self._base_url

    async def send_notification(
        self,
        kind: str,
        recipient: str,
        subject: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver one message. Returns True when the gateway accepted it.

        In bypass mode the message is only logged and counts as delivered.
        """
        if self._bypass_mode:
            logger.info("Notification bypass mode: %s to %s (%s)", kind, recipient, subject)
            return True

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        payload = {
            "type": kind,
            "from": self._sender,
            "to": recipient,
            "subject": subject,
            "body": body,
            "metadata": metadata or {},
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._base_url, json=payload, headers=headers)
                response.raise_for_status()

        except httpx.TimeoutException:
            logger.warning("Notification gateway timeout sending %s to %s", kind, recipient)
            return False

        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Notification gateway HTTP error %s sending %s to %s",
                exc.response.status_code,
                kind,
                recipient,
            )
            return False

        except httpx.HTTPError as exc:
            logger.warning("Notification gateway unreachable sending %s to %s: %s", kind, recipient, exc)
            return False

        logger.info("Notification %s sent to %s", kind, recipient)
        return True


def format_amount(amount: Any) -> str:
    """Render a money amount with the broker's currency symbol, e.g. ``₦1,250,000.00``."""
    return f"{settings.broker.currency_symbol}{float(amount):,.2f}"


# Module-level singleton
notification_client = NotificationClient()
