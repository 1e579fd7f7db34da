"""
Outbound webhook delivery.

Each delivery is a JSON POST of ``{"event", "timestamp", "payload"}`` with:

    Content-Type: application/json
    X-EchoMail-Event: <event>
    X-EchoMail-Timestamp: <unix seconds>
    X-EchoMail-Signature: hex HMAC-SHA256(secret, body)   (only if a secret is set)

Receivers verify the signature over the exact request body bytes.
Deliveries are fire-and-forget: failures are logged, never raised to the
request that caused the event.
"""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from echomail.models.webhook import WebhookEvent
from echomail.services.store import webhook_store

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 30.0


def sign_payload(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def build_delivery(event: str, payload: Dict[str, Any], secret: Optional[str] = None) -> Tuple[str, Dict[str, str]]:
    """Serialized body and headers for one delivery."""
    body = json.dumps(
        {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        },
        separators=(",", ":"),
        default=str,
    )
    headers = {
        "Content-Type": "application/json",
        "X-EchoMail-Event": event,
        "X-EchoMail-Timestamp": str(int(time.time())),
    }
    if secret:
        headers["X-EchoMail-Signature"] = sign_payload(secret, body)
    return body, headers


async def _deliver(client: httpx.AsyncClient, webhook: Dict[str, Any], event: str, payload: Dict[str, Any]) -> bool:
    body, headers = build_delivery(event, payload, webhook.get("secret"))
    try:
        response = await client.post(webhook["url"], content=body, headers=headers)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Webhook {webhook.get('id')} ({event}) delivery failed: {e}")
        return False

    try:
        webhook_store.mark_triggered(webhook["id"])
    except Exception as e:
        logger.warning(f"Could not update last_triggered_at for webhook {webhook.get('id')}: {e}")
    return True


async def trigger_webhooks(
    user_email: str,
    event: WebhookEvent,
    payload: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[bool]:
    """
    Deliver ``event`` to every active webhook of ``user_email`` subscribed to it.

    Returns one success flag per targeted webhook.
    """
    event_name = event.value if isinstance(event, WebhookEvent) else str(event)
    try:
        webhooks = await asyncio.to_thread(webhook_store.list_active_for_event, user_email, event_name)
    except Exception as e:
        logger.error(f"Could not load webhooks for {user_email}: {e}")
        return []

    if not webhooks:
        return []

    logger.info(f"Triggering {len(webhooks)} webhook(s) for {event_name}")
    async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS, transport=transport) as client:
        return list(await asyncio.gather(*(_deliver(client, hook, event_name, payload) for hook in webhooks)))


async def deliver_webhook(
    webhook: Dict[str, Any],
    event: WebhookEvent,
    payload: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Deliver a single event to one webhook, regardless of its subscriptions."""
    async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS, transport=transport) as client:
        return await _deliver(client, webhook, event.value, payload)
