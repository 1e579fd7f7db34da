"""
Campaign and draft send endpoints.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException

from echomail.auth import SessionUser, get_current_user, verify_record_ownership
from echomail.models.campaign import CampaignStatus
from echomail.models.draft import DraftStatus, SendDraftRequest, SendDraftResponse
from echomail.models.email import AttachmentData, PersonalizedEmail, SendEmailRequest, SendEmailResponse, SendSummary
from echomail.models.webhook import WebhookEvent
from echomail.services.attachments import AttachmentError, AttachmentResolver, is_remote
from echomail.services.gmail import GmailAPIError, GmailAuthError, GmailClient
from echomail.services.recipients import find_row_for_email
from echomail.services.sender import TrackingOptions, send_personalized_emails
from echomail.services.store import campaign_store, draft_store
from echomail.services.tracking import generate_campaign_id
from echomail.services.webhooks import trigger_webhooks

router = APIRouter()

logger = logging.getLogger(__name__)


def _validate_request(request: SendEmailRequest) -> None:
    """Reject the whole request before anything is sent."""
    if not request.personalized_emails:
        raise HTTPException(status_code=400, detail="No emails provided")

    for index, email in enumerate(request.personalized_emails):
        missing = [
            name for name, value in (("to", email.to), ("subject", email.subject), ("message", email.body))
            if not value or not value.strip()
        ]
        if missing:
            raise HTTPException(
                status_code=400,
                detail=f"Email {index + 1} is missing required field(s): {', '.join(missing)}",
            )


def _persist_campaign(
    emails: Sequence[PersonalizedEmail],
    campaign_type: str,
    campaign_id: str,
    user_email: str,
    results: list,
    summary: SendSummary,
    idempotency_key: Optional[str] = None,
) -> Optional[dict]:
    """Save the campaign record. A failure is logged; the send already happened."""
    first = emails[0]
    status = CampaignStatus.COMPLETED if summary.sent > 0 else CampaignStatus.FAILED
    attachments = [
        {"name": a.name, "type": a.mime_type, "url": a.data if is_remote(a.data) else None}
        for a in first.attachments
    ]
    try:
        return campaign_store.create(
            user_email,
            {
                "id": campaign_id,
                "subject": first.subject,
                "content": first.body,
                "recipients": [e.to for e in emails],
                "sent": summary.sent,
                "failed": summary.failed,
                "status": status.value,
                "campaign_type": campaign_type,
                "attachments": attachments or None,
                "send_results": [r.model_dump() for r in results],
            },
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        logger.error(f"Failed to save campaign {campaign_id} for {user_email}: {e}")
        return None


def _queue_campaign_webhooks(
    background_tasks: BackgroundTasks,
    user_email: str,
    campaign_id: str,
    subject: str,
    summary: SendSummary,
) -> None:
    event = WebhookEvent.CAMPAIGN_SENT if summary.sent > 0 else WebhookEvent.CAMPAIGN_FAILED
    background_tasks.add_task(
        trigger_webhooks,
        user_email,
        event,
        {
            "campaign_id": campaign_id,
            "subject": subject,
            "total": summary.total,
            "sent": summary.sent,
            "failed": summary.failed,
        },
    )


@router.post("/send-email", response_model=SendEmailResponse)
async def send_email(
    request: SendEmailRequest,
    background_tasks: BackgroundTasks,
    user: SessionUser = Depends(get_current_user),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """
    Send one personalized email per recipient through the user's Gmail.

    Recipients are processed sequentially; a failed recipient is reported
    in ``results`` and does not stop the others. The campaign record is
    saved once after the loop.

    Requires authentication with a Google access token.
    """
    if not user.access_token:
        raise HTTPException(status_code=401, detail="No Google access token for this session")

    _validate_request(request)

    campaign_id = request.campaign_id or generate_campaign_id()
    logger.info(
        f"Send request from {user.email}: campaign={campaign_id}, "
        f"recipients={len(request.personalized_emails)}, tracking={request.tracking_enabled}"
    )

    async with GmailClient(user.access_token) as gmail:
        try:
            from_address = await gmail.get_profile_email()
        except GmailAuthError:
            raise HTTPException(status_code=401, detail="Google access token expired or revoked")
        except GmailAPIError as e:
            logger.error(f"Could not load Gmail profile for {user.email}: {e}")
            raise HTTPException(status_code=502, detail=f"Failed to fetch Gmail profile: {e}")

        tracking = None
        if request.tracking_enabled:
            tracking = TrackingOptions(
                campaign_id=campaign_id,
                user_email=user.email,
                is_transactional=request.is_transactional,
            )

        results, summary = await send_personalized_emails(
            request.personalized_emails,
            gmail,
            from_address,
            resolver=AttachmentResolver(),
            tracking=tracking,
        )

    _persist_campaign(
        request.personalized_emails, request.campaign_type, campaign_id, user.email, results, summary, idempotency_key
    )
    _queue_campaign_webhooks(
        background_tasks, user.email, campaign_id, request.personalized_emails[0].subject, summary
    )

    return SendEmailResponse(results=results, summary=summary, campaign_id=campaign_id)


def _draft_emails(draft: Dict[str, Any]) -> List[PersonalizedEmail]:
    """One email per draft recipient, personalized from the matching CSV row when there is one."""
    csv_rows = draft.get("csv_data") or []
    attachments = [
        AttachmentData(name=a.get("name", ""), mime_type=a.get("type") or "application/octet-stream", data=a["url"])
        for a in draft.get("attachments") or []
        if a.get("url")
    ]
    emails = []
    for recipient in draft.get("recipients") or []:
        address = str(recipient).strip()
        if not address:
            continue
        row = find_row_for_email(csv_rows, address) or {}
        emails.append(
            PersonalizedEmail(
                to=address,
                subject=draft.get("subject") or "",
                body=draft.get("content") or "",
                original_row_data=dict(row),
                attachments=attachments,
            )
        )
    return emails


@router.post("/send-draft", response_model=SendDraftResponse)
async def send_draft(
    request: SendDraftRequest,
    background_tasks: BackgroundTasks,
    user: SessionUser = Depends(get_current_user),
):
    """
    Send a saved draft now.

    Only a ``pending`` draft is sent. It is ``sending`` for the length of the
    run and ends ``completed`` (at least one delivery) or ``failed``. When
    attachments cannot be prepared or the Gmail profile cannot be loaded,
    nothing is sent and the draft goes back to ``pending`` with the error
    recorded, ready to retry.
    """
    if not user.access_token:
        raise HTTPException(status_code=401, detail="No Google access token for this session")

    draft_id = request.draft_id
    draft = await verify_record_ownership(draft_store, draft_id, user.email)

    status = draft.get("status") or DraftStatus.PENDING.value
    if status != DraftStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"Draft is already {status}")

    emails = _draft_emails(draft)
    if not emails:
        raise HTTPException(status_code=400, detail="Draft has no recipients")
    if not (draft.get("subject") or "").strip():
        raise HTTPException(status_code=400, detail="Draft has no subject")

    if draft_store.claim_for_send(draft_id) is None:
        raise HTTPException(status_code=409, detail="Draft is already being sent")
    logger.info(f"Sending draft {draft_id} for {user.email}: recipients={len(emails)}")

    resolver = AttachmentResolver()
    try:
        resolved = [await resolver.resolve(a) for a in emails[0].attachments]
    except AttachmentError as e:
        logger.error(f"Draft {draft_id}: attachments could not be prepared: {e}")
        draft_store.release(draft_id, "Failed to process attachments")
        raise HTTPException(status_code=500, detail=f"Failed to process attachments: {e}")
    outgoing = [email.model_copy(update={"attachments": resolved}) for email in emails]

    async with GmailClient(user.access_token) as gmail:
        try:
            from_address = await gmail.get_profile_email()
        except GmailAPIError as e:
            logger.error(f"Draft {draft_id}: could not load Gmail profile for {user.email}: {e}")
            draft_store.release(draft_id, f"Failed to fetch Gmail profile: {e}")
            if isinstance(e, GmailAuthError):
                raise HTTPException(status_code=401, detail="Google access token expired or revoked")
            raise HTTPException(status_code=502, detail=f"Failed to fetch Gmail profile: {e}")

        results, summary = await send_personalized_emails(outgoing, gmail, from_address, resolver=resolver)

    final = DraftStatus.COMPLETED if summary.sent > 0 else DraftStatus.FAILED
    error = f"{summary.failed} of {summary.total} emails failed" if summary.failed else None
    try:
        draft_store.finish(draft_id, final.value, error)
    except Exception as e:
        logger.error(f"Draft {draft_id} was sent but its status could not be saved: {e}")

    campaign_id = generate_campaign_id()
    _persist_campaign(emails, "draft", campaign_id, user.email, results, summary)
    _queue_campaign_webhooks(background_tasks, user.email, campaign_id, emails[0].subject, summary)

    return SendDraftResponse(status=final, results=results, summary=summary, campaign_id=campaign_id)
