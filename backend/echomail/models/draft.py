"""
Pydantic models for saved drafts.

A draft is a composed email that has not gone out yet. Its status moves
``pending -> sending -> completed | failed``; a completed or failed draft can
be reset to ``pending`` and sent again.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from echomail.models.email import SendResult, SendSummary


class DraftStatus(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


class DraftAttachment(BaseModel):
    """A file linked from a draft; ``url`` points at the uploaded copy."""
    name: str
    url: str
    type: str = "application/octet-stream"


class DraftCreate(BaseModel):
    subject: str
    content: str = ""
    recipients: List[str] = Field(default_factory=list)
    attachments: List[DraftAttachment] = Field(default_factory=list)
    # Uploaded CSV rows, matched to recipients by their email column.
    csv_data: List[Dict[str, Any]] = Field(default_factory=list)
    saved_at: Optional[str] = None


class DraftUpdate(BaseModel):
    """Content edits. Status only changes through send and reset."""
    subject: Optional[str] = None
    content: Optional[str] = None
    recipients: Optional[List[str]] = None
    attachments: Optional[List[DraftAttachment]] = None
    csv_data: Optional[List[Dict[str, Any]]] = None
    saved_at: Optional[str] = None


class Draft(DraftCreate):
    id: str
    user_email: str
    status: DraftStatus = DraftStatus.PENDING
    error: Optional[str] = None
    sent_at: Optional[str] = None
    created_at: Optional[str] = None


class SendDraftRequest(BaseModel):
    draft_id: str = Field(alias="draftId")

    model_config = {"populate_by_name": True}


class SendDraftResponse(BaseModel):
    success: bool = True
    status: DraftStatus
    results: List[SendResult]
    summary: SendSummary
    campaign_id: Optional[str] = Field(default=None, alias="campaignId")

    model_config = {"populate_by_name": True}
