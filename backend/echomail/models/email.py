"""
Pydantic models for the send pipeline.

Wire format is camelCase (what the compose UI posts); Python attributes are
snake_case. ``populate_by_name`` lets services build the models directly.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class DeliveryState(str, Enum):
    """Per-recipient state during a send run."""
    PENDING = "pending"
    SENDING = "sending"
    SUCCESS = "success"
    ERROR = "error"


class AttachmentData(BaseModel):
    """
    A file to attach to an outgoing message.

    ``data`` is base64 file content by the time the MIME builder runs. The
    compose UI may also hand over an http(s) URL here (an uploaded file);
    the attachment resolver downloads and encodes those first.
    """
    name: str
    mime_type: str = Field(default="application/octet-stream", alias="type")
    data: str

    model_config = {"populate_by_name": True}


class PersonalizedEmail(BaseModel):
    """One recipient's email as submitted to /api/send-email."""
    to: str = ""
    subject: str = ""
    body: str = Field(default="", alias="message")
    original_row_data: Dict[str, Any] = Field(default_factory=dict, alias="originalRowData")
    attachments: List[AttachmentData] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class SendResult(BaseModel):
    email: str
    status: Literal["success", "error"]
    error: Optional[str] = None


class SendSummary(BaseModel):
    total: int = 0
    sent: int = 0
    failed: int = 0


class SendEmailRequest(BaseModel):
    """Request body for POST /api/send-email."""
    personalized_emails: List[PersonalizedEmail] = Field(default_factory=list, alias="personalizedEmails")
    campaign_id: Optional[str] = Field(default=None, alias="campaignId")
    campaign_type: str = Field(default="bulk", alias="campaignType")
    tracking_enabled: bool = Field(default=False, alias="trackingEnabled")
    is_transactional: bool = Field(default=False, alias="isTransactional")

    model_config = {"populate_by_name": True}


class SendEmailResponse(BaseModel):
    results: List[SendResult]
    summary: SendSummary
    campaign_id: Optional[str] = Field(default=None, alias="campaignId")

    model_config = {"populate_by_name": True}


class FormatEmailRequest(BaseModel):
    html_content: str = Field(alias="htmlContent")

    model_config = {"populate_by_name": True}


class FormatEmailResponse(BaseModel):
    success: bool
    formatted: str
    emoji_converted: bool = Field(alias="emojiConverted")
    warnings: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
