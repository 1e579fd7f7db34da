"""
Campaign history API endpoints.
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.campaign import Campaign, CampaignCreate, CampaignUpdate
from echomail.services.store import campaign_store

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[Campaign])
async def list_campaigns(
    limit: int = Query(100, ge=1, le=500),
    user: SessionUser = Depends(get_current_user),
):
    """List the user's campaigns, newest first."""
    return campaign_store.list_by_user(user.email, limit=limit)


@router.post("/", response_model=Campaign, status_code=201)
async def create_campaign(
    campaign: CampaignCreate,
    user: SessionUser = Depends(get_current_user),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """
    Save a campaign record.

    Clients retrying a save should send the same ``Idempotency-Key``; the
    first record is returned instead of creating a duplicate.
    """
    return campaign_store.create(
        user.email,
        campaign.model_dump(mode="json"),
        idempotency_key=idempotency_key,
    )


@router.get("/stream")
async def stream_campaigns(
    interval: float = Query(2.0, ge=0.5, le=60),
    user: SessionUser = Depends(get_current_user),
):
    """Server-sent events: the user's campaign list, re-sent whenever it changes."""

    async def events():
        async for rows in campaign_store.subscribe(user.email, interval=interval):
            yield f"data: {json.dumps(rows, default=str)}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{campaign_id}", response_model=Campaign)
async def get_campaign(
    campaign_id: str,
    user: SessionUser = Depends(get_current_user),
):
    return await verify_record_ownership(campaign_store, campaign_id, user.email)


@router.patch("/{campaign_id}", response_model=Campaign)
async def update_campaign(
    campaign_id: str,
    update: CampaignUpdate,
    user: SessionUser = Depends(get_current_user),
):
    """Update the given fields of a campaign (e.g. status after a manual resend)."""
    await verify_record_ownership(campaign_store, campaign_id, user.email)

    data = update.model_dump(mode="json", exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = campaign_store.update(campaign_id, data)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update campaign")
    return updated


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(campaign_store, campaign_id, user.email)

    if not campaign_store.delete(campaign_id):
        raise HTTPException(status_code=500, detail="Failed to delete campaign")

    logger.info(f"Deleted campaign {campaign_id} for {user.email}")
    return {"message": "Campaign deleted successfully"}
