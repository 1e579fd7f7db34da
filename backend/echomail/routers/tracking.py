"""
Public tracking endpoints: click redirect, open pixel and unsubscribe.

These are hit by mail clients, not the app, so they take no auth and never
fail visibly: a tracking write that errors is logged and the recipient still
gets their redirect or pixel.
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from echomail.models.webhook import TrackingEvent, TrackingEventType, WebhookEvent
from echomail.services.store import tracking_event_store, unsubscribe_store, utc_now
from echomail.services.tracking import TRACKING_PIXEL
from echomail.services.webhooks import trigger_webhooks

router = APIRouter()

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


def _record_event(event: TrackingEvent) -> bool:
    try:
        tracking_event_store.create(event.user_email, event.model_dump(mode="json", exclude={"user_email"}))
        return True
    except Exception as e:
        logger.error(f"Failed to record {event.event_type.value} event for campaign {event.campaign_id}: {e}")
        return False


@router.get("/track-click")
async def track_click(
    request: Request,
    background_tasks: BackgroundTasks,
    url: Optional[str] = None,
    c: Optional[str] = None,
    e: Optional[str] = None,
    u: Optional[str] = None,
    r: Optional[str] = None,
    l: Optional[str] = None,
):
    """Record a link click, then 302 to the target. Missing or non-http targets go to ``/``."""
    if not url or not url.lower().startswith(("http://", "https://")):
        return RedirectResponse("/", status_code=302)

    if c and e and u:
        event = TrackingEvent(
            campaign_id=c,
            email=e.lower(),
            user_email=u,
            event_type=TrackingEventType.CLICK,
            recipient_id=r,
            link_id=l,
            link_url=url,
            user_agent=request.headers.get("user-agent"),
            ip_address=_client_ip(request),
        )
        if _record_event(event):
            background_tasks.add_task(
                trigger_webhooks,
                u,
                WebhookEvent.EMAIL_CLICKED,
                {"campaign_id": c, "email": event.email, "link_url": url},
            )

    return RedirectResponse(url, status_code=302)


@router.get("/track-open")
async def track_open(
    request: Request,
    background_tasks: BackgroundTasks,
    c: Optional[str] = None,
    e: Optional[str] = None,
    u: Optional[str] = None,
    r: Optional[str] = None,
):
    """Record an open and return a 1x1 transparent GIF."""
    if c and e and u:
        event = TrackingEvent(
            campaign_id=c,
            email=e.lower(),
            user_email=u,
            event_type=TrackingEventType.OPEN,
            recipient_id=r,
            user_agent=request.headers.get("user-agent"),
            ip_address=_client_ip(request),
        )
        if _record_event(event):
            background_tasks.add_task(
                trigger_webhooks,
                u,
                WebhookEvent.EMAIL_OPENED,
                {"campaign_id": c, "email": event.email},
            )

    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=NO_CACHE_HEADERS)


def _page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    body = (
        "<!DOCTYPE html><html lang=\"en\"><head><meta charset=\"UTF-8\">"
        f"<title>{html.escape(title)} - EchoMail</title></head>"
        "<body style=\"font-family:Arial, sans-serif;background:#f5f5f5;padding:40px\">"
        "<div style=\"max-width:500px;margin:0 auto;background:white;border-radius:16px;padding:48px;text-align:center\">"
        f"<h1 style=\"font-size:28px;color:#111827\">{html.escape(title)}</h1>"
        f"<p style=\"font-size:16px;color:#6b7280\">{html.escape(message)}</p>"
        "</div></body></html>"
    )
    return HTMLResponse(content=body, status_code=status_code)


@router.get("/unsubscribe", response_class=HTMLResponse)
async def unsubscribe(e: Optional[str] = None, u: Optional[str] = None):
    """Add the recipient to the sender's unsubscribe list. Repeat clicks are harmless."""
    if not e or not u:
        return _page("Invalid Request", "Missing required parameters", status_code=400)

    email = e.strip().lower()
    try:
        if unsubscribe_store.find(u, email):
            return _page("Already Unsubscribed", f"{email} is already unsubscribed from this mailing list.")

        unsubscribe_store.create(
            u,
            {"email": email, "reason": "Clicked unsubscribe link", "unsubscribed_at": utc_now()},
        )
    except Exception as exc:
        logger.error(f"Unsubscribe failed for {email} (sender {u}): {exc}")
        return _page(
            "Error",
            "An error occurred while processing your request. Please try again later.",
            status_code=500,
        )

    logger.info(f"Unsubscribed {email} from {u}")
    return _page(
        "Successfully Unsubscribed",
        f"{email} has been unsubscribed from this mailing list. "
        "You will no longer receive emails from this sender.",
    )
