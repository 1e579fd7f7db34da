"""
Tests for webhook signing and delivery.
"""

import hashlib
import hmac
import json
from unittest.mock import patch

import httpx
import pytest

from echomail.models.webhook import WebhookEvent
from echomail.services.webhooks import build_delivery, deliver_webhook, sign_payload, trigger_webhooks


class TestSigning:
    def test_sign_payload_is_hex_hmac_sha256(self):
        """Signatures are hex HMAC-SHA256 of the raw body."""
        expected = hmac.new(b"s3cret", b'{"a":1}', hashlib.sha256).hexdigest()
        assert sign_payload("s3cret", '{"a":1}') == expected

    def test_build_delivery_with_secret(self):
        """A secret adds the X-EchoMail-Signature header."""
        body, headers = build_delivery("campaign.sent", {"campaign_id": "camp_1", "sent": 2}, "s3cret")

        parsed = json.loads(body)
        assert parsed["event"] == "campaign.sent"
        assert parsed["payload"] == {"campaign_id": "camp_1", "sent": 2}
        assert "timestamp" in parsed
        assert ", " not in body and '": ' not in body

        assert headers["Content-Type"] == "application/json"
        assert headers["X-EchoMail-Event"] == "campaign.sent"
        assert headers["X-EchoMail-Timestamp"].isdigit()
        assert headers["X-EchoMail-Signature"] == sign_payload("s3cret", body)

    def test_build_delivery_without_secret(self):
        """Unsigned hooks carry no signature header."""
        _, headers = build_delivery("campaign.sent", {}, None)
        assert "X-EchoMail-Signature" not in headers


class TestTriggerWebhooks:
    @pytest.mark.asyncio
    async def test_delivers_to_subscribed_hooks(self):
        """Every active hook for the event gets a POST and is marked triggered."""
        received = []

        def handler(request):
            received.append(request)
            if request.url.host == "ok.example.com":
                return httpx.Response(200)
            return httpx.Response(500)

        hooks = [
            {"id": "w-1", "url": "https://ok.example.com/hook", "secret": "s3cret"},
            {"id": "w-2", "url": "https://broken.example.com/hook", "secret": None},
        ]

        with patch("echomail.services.webhooks.webhook_store") as store:
            store.list_active_for_event.return_value = hooks
            results = await trigger_webhooks(
                "sender@example.com",
                WebhookEvent.CAMPAIGN_SENT,
                {"campaign_id": "camp_1"},
                transport=httpx.MockTransport(handler),
            )

        assert results == [True, False]
        store.list_active_for_event.assert_called_once_with("sender@example.com", "campaign.sent")
        store.mark_triggered.assert_called_once_with("w-1")

        signed = next(r for r in received if r.url.host == "ok.example.com")
        assert signed.headers["X-EchoMail-Event"] == "campaign.sent"
        assert signed.headers["X-EchoMail-Signature"] == sign_payload("s3cret", signed.content.decode("utf-8"))
        unsigned = next(r for r in received if r.url.host == "broken.example.com")
        assert "X-EchoMail-Signature" not in unsigned.headers

    @pytest.mark.asyncio
    async def test_no_hooks(self):
        """No subscribed hooks means nothing is sent."""
        with patch("echomail.services.webhooks.webhook_store") as store:
            store.list_active_for_event.return_value = []
            assert await trigger_webhooks("sender@example.com", WebhookEvent.EMAIL_OPENED, {}) == []

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self):
        """A lookup error never reaches the caller."""
        with patch("echomail.services.webhooks.webhook_store") as store:
            store.list_active_for_event.side_effect = Exception("db down")
            assert await trigger_webhooks("sender@example.com", WebhookEvent.EMAIL_OPENED, {}) == []

    @pytest.mark.asyncio
    async def test_connection_error_counts_as_failure(self):
        """An unreachable hook is reported as failed and not marked."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with patch("echomail.services.webhooks.webhook_store") as store:
            store.list_active_for_event.return_value = [{"id": "w-1", "url": "https://down.example.com"}]
            results = await trigger_webhooks(
                "sender@example.com", WebhookEvent.CAMPAIGN_FAILED, {}, transport=httpx.MockTransport(handler)
            )

        assert results == [False]
        store.mark_triggered.assert_not_called()

    @pytest.mark.asyncio
    async def test_unrequestable_url_counts_as_failure(self):
        """A stored URL httpx rejects fails that hook only; the others still deliver."""
        def handler(request):
            return httpx.Response(200)

        hooks = [
            {"id": "w-bad", "url": "http://hooks.example.com:badport/x"},
            {"id": "w-ok", "url": "https://ok.example.com/hook"},
        ]
        with patch("echomail.services.webhooks.webhook_store") as store:
            store.list_active_for_event.return_value = hooks
            results = await trigger_webhooks(
                "sender@example.com", WebhookEvent.CAMPAIGN_SENT, {}, transport=httpx.MockTransport(handler)
            )

        assert results == [False, True]
        store.mark_triggered.assert_called_once_with("w-ok")


class TestDeliverWebhook:
    @pytest.mark.asyncio
    async def test_single_delivery(self):
        """deliver_webhook posts once and marks the hook triggered."""
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(204)

        with patch("echomail.services.webhooks.webhook_store") as store:
            delivered = await deliver_webhook(
                {"id": "w-1", "url": "https://hooks.example.com/x"},
                WebhookEvent.CAMPAIGN_SENT,
                {"campaign_id": "test"},
                transport=httpx.MockTransport(handler),
            )

        assert delivered is True
        assert received[0]["event"] == "campaign.sent"
        store.mark_triggered.assert_called_once_with("w-1")
