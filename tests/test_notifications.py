"""Tests for quotedesk/notifications/client.py — single-shot gateway sends."""

from __future__ import annotations

import json

import httpx
import pytest

from quotedesk.config import settings
from quotedesk.notifications.client import NotificationClient, format_amount

GATEWAY = "https://notify.example/api/messages"


def _make_client(handler) -> tuple[NotificationClient, list[httpx.Request]]:
    """Client wired to a MockTransport; returns it with the list of captured requests."""
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = NotificationClient(base_url=GATEWAY, api_key="secret", transport=httpx.MockTransport(_record))
    return client, seen


class TestBypassMode:
    @pytest.mark.asyncio
    async def test_no_gateway_counts_as_delivered(self):
        client = NotificationClient(base_url="")
        assert client._bypass_mode
        assert await client.send_notification("quote_evaluation_complete", "a@b.c", "Hi", "Body") is True


class TestSend:
    @pytest.mark.asyncio
    async def test_payload_and_auth(self):
        client, seen = _make_client(lambda request: httpx.Response(202, json={"id": "msg-1"}))

        ok = await client.send_notification(
            "quote_evaluation_complete",
            "adaeze@example.com",
            "Your Insurance Quotes Are Ready",
            "Hello",
            {"quote_id": "q-1"},
        )

        assert ok is True
        [request] = seen
        assert request.method == "POST"
        assert str(request.url) == GATEWAY
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body == {
            "type": "quote_evaluation_complete",
            "from": settings.notifications.notification_sender,
            "to": "adaeze@example.com",
            "subject": "Your Insurance Quotes Are Ready",
            "body": "Hello",
            "metadata": {"quote_id": "q-1"},
        }

    @pytest.mark.asyncio
    async def test_http_error_reported_not_raised(self):
        client, seen = _make_client(lambda request: httpx.Response(503))
        assert await client.send_notification("ops_alert", "ops@example.com", "s", "b") is False
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_single_shot(self):
        def _timeout(request):
            raise httpx.ReadTimeout("gateway too slow", request=request)

        client, seen = _make_client(_timeout)
        assert await client.send_notification("ops_alert", "ops@example.com", "s", "b") is False
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def _refused(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _make_client(_refused)
        assert await client.send_notification("ops_alert", "ops@example.com", "s", "b") is False


class TestFormatAmount:
    def test_thousands_and_symbol(self, monkeypatch):
        monkeypatch.setattr(settings.broker, "currency_symbol", "₦")
        assert format_amount("2500000") == "₦2,500,000.00"
        assert format_amount(0) == "₦0.00"
