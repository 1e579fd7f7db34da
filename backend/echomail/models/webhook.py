"""
Pydantic models for outbound webhooks and tracking events.
"""

from enum import Enum
from typing import List, Optional
import httpx
from pydantic import BaseModel, Field, field_validator


class WebhookEvent(str, Enum):
    CAMPAIGN_SENT = "campaign.sent"
    CAMPAIGN_FAILED = "campaign.failed"
    EMAIL_OPENED = "email.opened"
    EMAIL_CLICKED = "email.clicked"
    EMAIL_BOUNCED = "email.bounced"


def is_deliverable_url(url: str) -> bool:
    """An absolute http(s) URL that httpx can actually request."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


class WebhookCreate(BaseModel):
    name: str
    url: str
    events: List[WebhookEvent] = Field(min_length=1)
    is_active: bool = True
    secret: Optional[str] = None

    @field_validator("url")
    @classmethod
    def require_http_url(cls, v: str) -> str:
        if not is_deliverable_url(v):
            raise ValueError("url must be a valid http:// or https:// URL")
        return v


class WebhookUpdate(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    events: Optional[List[WebhookEvent]] = None
    is_active: Optional[bool] = None
    secret: Optional[str] = None


class Webhook(WebhookCreate):
    id: str
    user_email: str
    last_triggered_at: Optional[str] = None
    created_at: Optional[str] = None


class TrackingEventType(str, Enum):
    OPEN = "open"
    CLICK = "click"


class TrackingEvent(BaseModel):
    """Row written by the tracking endpoints."""
    campaign_id: str
    email: str
    user_email: str
    event_type: TrackingEventType
    recipient_id: Optional[str] = None
    link_id: Optional[str] = None
    link_url: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
