"""
Email template API endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.contact import Template, TemplateCreate, TemplateUpdate
from echomail.services.store import template_store

router = APIRouter()


@router.get("/", response_model=List[Template])
async def list_templates(user: SessionUser = Depends(get_current_user)):
    return template_store.list_by_user(user.email)


@router.post("/", response_model=Template, status_code=201)
async def create_template(
    template: TemplateCreate,
    user: SessionUser = Depends(get_current_user),
):
    return template_store.create(user.email, template.model_dump())


@router.get("/{template_id}", response_model=Template)
async def get_template(
    template_id: str,
    user: SessionUser = Depends(get_current_user),
):
    return await verify_record_ownership(template_store, template_id, user.email)


@router.patch("/{template_id}", response_model=Template)
async def update_template(
    template_id: str,
    update: TemplateUpdate,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(template_store, template_id, user.email)

    data = update.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = template_store.update(template_id, data)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update template")
    return updated


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    user: SessionUser = Depends(get_current_user),
):
    await verify_record_ownership(template_store, template_id, user.email)

    if not template_store.delete(template_id):
        raise HTTPException(status_code=500, detail="Failed to delete template")
    return {"message": "Template deleted successfully"}
