"""
Draft email API endpoints.

Sending a draft is ``POST /api/send-draft``; these endpoints save, edit and
reset drafts.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.draft import Draft, DraftCreate, DraftStatus, DraftUpdate
from echomail.services.store import draft_store, utc_now

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[Draft])
async def list_drafts(user: SessionUser = Depends(get_current_user)):
    return draft_store.list_by_user(user.email)


@router.post("/", response_model=Draft, status_code=201)
async def create_draft(
    draft: DraftCreate,
    user: SessionUser = Depends(get_current_user),
):
    data = draft.model_dump(mode="json")
    data["saved_at"] = data.get("saved_at") or utc_now()
    data["status"] = DraftStatus.PENDING.value
    return draft_store.create(user.email, data)


@router.get("/{draft_id}", response_model=Draft)
async def get_draft(
    draft_id: str,
    user: SessionUser = Depends(get_current_user),
):
    return await verify_record_ownership(draft_store, draft_id, user.email)


@router.patch("/{draft_id}", response_model=Draft)
async def update_draft(
    draft_id: str,
    update: DraftUpdate,
    user: SessionUser = Depends(get_current_user),
):
    """Edit a draft's content. A draft that is being sent cannot be edited."""
    draft = await verify_record_ownership(draft_store, draft_id, user.email)
    if draft.get("status") == DraftStatus.SENDING.value:
        raise HTTPException(status_code=409, detail="Draft is being sent")

    data = update.model_dump(mode="json", exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = draft_store.update(draft_id, data)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update draft")
    return updated


@router.post("/{draft_id}/reset", response_model=Draft)
async def reset_draft(
    draft_id: str,
    user: SessionUser = Depends(get_current_user),
):
    """Put a completed or failed draft back to ``pending`` so it can be sent again."""
    draft = await verify_record_ownership(draft_store, draft_id, user.email)

    status = draft.get("status") or DraftStatus.PENDING.value
    if status == DraftStatus.PENDING.value:
        return draft
    if status == DraftStatus.SENDING.value:
        raise HTTPException(status_code=409, detail="Draft is being sent")

    reset = draft_store.reset_to_pending(draft_id)
    if not reset:
        raise HTTPException(status_code=409, detail="Draft changed while resetting, reload and try again")
    logger.info(f"Reset draft {draft_id} ({status}) to pending for {user.email}")
    return reset


@router.delete("/{draft_id}")
async def delete_draft(
    draft_id: str,
    user: SessionUser = Depends(get_current_user),
):
    draft = await verify_record_ownership(draft_store, draft_id, user.email)
    if draft.get("status") == DraftStatus.SENDING.value:
        raise HTTPException(status_code=409, detail="Draft is being sent")

    if not draft_store.delete(draft_id):
        raise HTTPException(status_code=500, detail="Failed to delete draft")
    return {"message": "Draft deleted successfully"}
