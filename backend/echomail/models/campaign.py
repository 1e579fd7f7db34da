"""
Pydantic models for campaign records.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


class CampaignType(str, Enum):
    BULK = "bulk"
    CONTACT_LIST = "contact_list"
    MANUAL = "manual"
    TRANSACTIONAL = "transactional"


class CampaignCreate(BaseModel):
    """Request to create (or import) a campaign record."""
    subject: str
    content: str = ""
    # Stored as a JSON array; older rows hold a comma-separated string.
    recipients: List[str] = Field(default_factory=list)
    sent: int = 0
    failed: int = 0
    status: CampaignStatus = CampaignStatus.DRAFT
    campaign_type: str = CampaignType.BULK.value
    attachments: Optional[List[Dict[str, Any]]] = None
    send_results: Optional[List[Dict[str, Any]]] = None


class CampaignUpdate(BaseModel):
    """Partial update; only fields that are set get written."""
    subject: Optional[str] = None
    content: Optional[str] = None
    recipients: Optional[List[str]] = None
    sent: Optional[int] = None
    failed: Optional[int] = None
    status: Optional[CampaignStatus] = None
    campaign_type: Optional[str] = None
    attachments: Optional[List[Dict[str, Any]]] = None
    send_results: Optional[List[Dict[str, Any]]] = None


class Campaign(CampaignCreate):
    """Full campaign record from the database."""
    id: str
    user_email: str
    created_at: Optional[str] = None
