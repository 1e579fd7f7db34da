"""
Attachment upload endpoint.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from echomail.auth import SessionUser, get_current_user
from echomail.services.storage import upload_attachment

router = APIRouter()

logger = logging.getLogger(__name__)

# Gmail rejects messages over 25MB including base64 overhead.
MAX_ATTACHMENT_BYTES = 18 * 1024 * 1024


@router.post("/upload-attachment")
async def upload_attachments(
    files: List[UploadFile] = File(...),
    user: SessionUser = Depends(get_current_user),
):
    """
    Upload attachment files to storage.

    Each file is uploaded independently. A file that fails (too large,
    storage error) is logged and left out of ``uploads`` instead of
    failing the request.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    uploads = []
    for file in files:
        content = await file.read()
        name = file.filename or "attachment"
        if len(content) > MAX_ATTACHMENT_BYTES:
            logger.warning(f"Skipping {name!r} for {user.email}: {len(content)} bytes exceeds limit")
            continue
        try:
            uploads.append(upload_attachment(content, user.email, name, file.content_type))
        except Exception as e:
            logger.error(f"Attachment upload failed for {name!r}: {e}")

    return {"success": bool(uploads), "uploads": uploads}
