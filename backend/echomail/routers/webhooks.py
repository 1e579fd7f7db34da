"""
Webhook registration API endpoints.

Secrets are write-only: responses report whether a secret is set but never
echo it back.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.webhook import WebhookCreate, WebhookEvent, WebhookUpdate, is_deliverable_url
from echomail.services.store import webhook_store
from echomail.services.webhooks import deliver_webhook

router = APIRouter()

logger = logging.getLogger(__name__)


def _public(webhook: Dict[str, Any]) -> Dict[str, Any]:
    row = dict(webhook)
    row["has_secret"] = bool(row.pop("secret", None))
    return row


@router.get("/")
async def list_webhooks(user: SessionUser = Depends(get_current_user)) -> List[Dict[str, Any]]:
    return [_public(hook) for hook in webhook_store.list_by_user(user.email)]


@router.post("/", status_code=201)
async def create_webhook(
    webhook: WebhookCreate,
    user: SessionUser = Depends(get_current_user),
):
    created = webhook_store.create(user.email, webhook.model_dump(mode="json"))
    logger.info(f"Registered webhook {created.get('id')} for {user.email}: {webhook.url}")
    return _public(created)


@router.patch("/{webhook_id}")
async def update_webhook(
    webhook_id: str,
    update: WebhookUpdate,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(webhook_store, webhook_id, user.email)

    data = update.model_dump(mode="json", exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "url" in data and not is_deliverable_url(str(data["url"])):
        raise HTTPException(status_code=400, detail="url must be a valid http:// or https:// URL")

    updated = webhook_store.update(webhook_id, data)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update webhook")
    return _public(updated)


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: str,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(webhook_store, webhook_id, user.email)

    if not webhook_store.delete(webhook_id):
        raise HTTPException(status_code=500, detail="Failed to delete webhook")
    return {"message": "Webhook deleted successfully"}


@router.post("/{webhook_id}/test")
async def test_webhook(
    webhook_id: str,
    user: SessionUser = Depends(get_current_user),
):
    """Send a sample ``campaign.sent`` delivery to this webhook."""
    webhook = await verify_record_ownership(webhook_store, webhook_id, user.email)

    delivered = await deliver_webhook(
        webhook,
        WebhookEvent.CAMPAIGN_SENT,
        {"campaign_id": "test", "subject": "Test delivery", "total": 1, "sent": 1, "failed": 0},
    )
    return {"delivered": delivered}
