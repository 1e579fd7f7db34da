"""
Compose helpers: body formatting preview and recipient CSV import.
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from echomail.auth import SessionUser, get_current_user
from echomail.models.email import FormatEmailRequest, FormatEmailResponse
from echomail.services.formatter import format_for_email_with_details
from echomail.services.recipients import parse_recipients_csv

router = APIRouter()

logger = logging.getLogger(__name__)

MAX_CSV_BYTES = 5 * 1024 * 1024


@router.post("/format-email", response_model=FormatEmailResponse)
async def format_email(
    request: FormatEmailRequest,
    user: SessionUser = Depends(get_current_user),
):
    """
    Format compose HTML exactly as it will be sent, for the preview pane.

    Warnings (iframes, forms, oversized content...) are returned rather than
    rejected; formatting never fails the request.
    """
    if not request.html_content.strip():
        raise HTTPException(status_code=400, detail="htmlContent is required")

    result = format_for_email_with_details(request.html_content)
    return FormatEmailResponse(
        success=result.success,
        formatted=result.html,
        emoji_converted=result.emoji_converted,
        warnings=result.warnings,
    )


@router.post("/recipients/parse-csv")
async def parse_csv(
    file: UploadFile = File(...),
    user: SessionUser = Depends(get_current_user),
):
    """Parse an uploaded CSV into recipient records for placeholder substitution."""
    filename = (file.filename or "").lower()
    if filename and not filename.endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are supported")

    content = await file.read()
    if len(content) > MAX_CSV_BYTES:
        raise HTTPException(status_code=413, detail="CSV file is too large (max 5MB)")

    try:
        recipients = parse_recipients_csv(content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Parsed {len(recipients)} recipient(s) from {file.filename!r} for {user.email}")
    return {"recipients": recipients, "count": len(recipients)}
