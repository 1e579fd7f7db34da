"""
Sequential campaign sender.

Recipients go out one at a time, in input order, with a fixed pause between
messages; Gmail throttles bursts from a single account far more readily than
it throttles a steady trickle. Each recipient moves through
``pending -> sending -> success | error``. A failure is recorded against
that recipient only and the loop moves on; nothing is retried
automatically.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from echomail.models.email import DeliveryState, PersonalizedEmail, SendResult, SendSummary
from echomail.services.attachments import AttachmentResolver
from echomail.services.formatter import format_for_email
from echomail.services.gmail import GmailClient
from echomail.services.mime import MimeParts, build_mime_message, encode_for_transport
from echomail.services.placeholders import build_recipient_record, replace_placeholders
from echomail.services.tracking import TrackingContext, inject_tracking

logger = logging.getLogger(__name__)

StateCallback = Callable[[int, str, DeliveryState], None]


def get_send_delay() -> float:
    return float(os.getenv("SEND_DELAY_SECONDS", "1"))


@dataclass
class TrackingOptions:
    """Campaign-level tracking settings; a per-recipient context is derived from these."""
    campaign_id: str
    user_email: str
    is_transactional: bool = False
    base_url: str = ""


def summarize(results: Sequence[SendResult]) -> SendSummary:
    sent = sum(1 for r in results if r.status == "success")
    return SendSummary(total=len(results), sent=sent, failed=len(results) - sent)


async def _send_one(
    email: PersonalizedEmail,
    formatted_body: str,
    gmail: GmailClient,
    from_address: str,
    resolver: AttachmentResolver,
    tracking: Optional[TrackingOptions],
) -> None:
    attachments = [await resolver.resolve(a) for a in email.attachments]

    record = build_recipient_record(email.original_row_data, email=email.to)
    subject = replace_placeholders(email.subject, record)
    body = replace_placeholders(formatted_body, record, escape=True)

    if tracking:
        body = inject_tracking(
            body,
            TrackingContext(
                campaign_id=tracking.campaign_id,
                recipient_email=email.to,
                user_email=tracking.user_email,
                is_transactional=tracking.is_transactional,
                base_url=tracking.base_url,
            ),
        )

    message = build_mime_message(
        MimeParts(sender=from_address, to=email.to, subject=subject, html_body=body, attachments=attachments)
    )
    await gmail.send_raw(encode_for_transport(message))


async def send_personalized_emails(
    emails: Sequence[PersonalizedEmail],
    gmail: GmailClient,
    from_address: str,
    *,
    resolver: Optional[AttachmentResolver] = None,
    tracking: Optional[TrackingOptions] = None,
    delay_seconds: Optional[float] = None,
    on_state_change: Optional[StateCallback] = None,
) -> Tuple[List[SendResult], SendSummary]:
    """
    Send every email in order and collect one SendResult per recipient.

    Bodies are formatted once per distinct template (the compose UI sends
    the same template for every recipient) and substituted per recipient.

    Args:
        emails: Recipients, in send order.
        gmail: Open Gmail client for the sending account.
        from_address: The account's own address, from the profile endpoint.
        resolver: Attachment resolver; a fresh one is used when omitted.
        tracking: Enables open/click tracking and the unsubscribe footer.
        delay_seconds: Pause between sends; defaults to SEND_DELAY_SECONDS.
        on_state_change: Called as ``(index, email, state)`` on every transition.

    Returns:
        (results, summary)
    """
    resolver = resolver or AttachmentResolver()
    delay = get_send_delay() if delay_seconds is None else delay_seconds
    formatted_cache: Dict[str, str] = {}
    results: List[SendResult] = []

    def _notify(index: int, address: str, state: DeliveryState) -> None:
        if on_state_change:
            on_state_change(index, address, state)

    for index, email in enumerate(emails):
        _notify(index, email.to, DeliveryState.PENDING)

    for index, email in enumerate(emails):
        if index > 0 and delay > 0:
            await asyncio.sleep(delay)

        _notify(index, email.to, DeliveryState.SENDING)
        if email.body not in formatted_cache:
            formatted_cache[email.body] = format_for_email(email.body)

        try:
            await _send_one(email, formatted_cache[email.body], gmail, from_address, resolver, tracking)
        except Exception as e:
            logger.error(f"Send to {email.to} failed ({index + 1}/{len(emails)}): {e}")
            results.append(SendResult(email=email.to, status="error", error=str(e) or type(e).__name__))
            _notify(index, email.to, DeliveryState.ERROR)
            continue

        logger.info(f"Sent to {email.to} ({index + 1}/{len(emails)})")
        results.append(SendResult(email=email.to, status="success"))
        _notify(index, email.to, DeliveryState.SUCCESS)

    summary = summarize(results)
    logger.info(f"Send run finished: {summary.sent}/{summary.total} sent, {summary.failed} failed")
    return results, summary
