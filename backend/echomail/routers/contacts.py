"""
Contact management API endpoints.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.contact import Contact, ContactCreate, ContactUpdate
from echomail.services.recipients import recipient_from_contact
from echomail.services.store import contact_store

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[Contact])
async def list_contacts(
    limit: int = Query(500, ge=1, le=5000),
    user: SessionUser = Depends(get_current_user),
):
    return contact_store.list_by_user(user.email, limit=limit)


@router.get("/recipients")
async def contacts_as_recipients(
    tag: Optional[str] = None,
    user: SessionUser = Depends(get_current_user),
):
    """
    Saved contacts as recipient records, ready for a send.

    Optionally filtered to contacts carrying ``tag``.
    """
    contacts = contact_store.list_by_user(user.email, limit=5000)
    if tag:
        contacts = [c for c in contacts if tag in (c.get("tags") or [])]
    return {"recipients": [recipient_from_contact(c) for c in contacts]}


@router.post("/", response_model=Contact, status_code=201)
async def create_contact(
    contact: ContactCreate,
    user: SessionUser = Depends(get_current_user),
):
    """Create a contact. Emails are unique per user (409 on duplicates)."""
    existing = contact_store.find_by_email(user.email, contact.email)
    if existing:
        raise HTTPException(
            status_code=409,
            detail={
                "code": "DUPLICATE_CONTACT",
                "message": "A contact with this email already exists.",
                "existing_contact": {"id": existing.get("id"), "email": existing.get("email")},
            },
        )

    return contact_store.create(user.email, contact.model_dump())


@router.patch("/{contact_id}", response_model=Contact)
async def update_contact(
    contact_id: str,
    update: ContactUpdate,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(contact_store, contact_id, user.email)

    data = update.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = contact_store.update(contact_id, data)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update contact")
    return updated


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(contact_store, contact_id, user.email)

    if not contact_store.delete(contact_id):
        raise HTTPException(status_code=500, detail="Failed to delete contact")
    return {"message": "Contact deleted successfully"}
