"""Newsletter Schemas

Pydantic schemas for the public subscription endpoint and the newsletter
back office.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID

from app.models.newsletter import ContactStatus, CampaignStatus, EventType


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

class SubscribeRequest(BaseModel):
    """Payload of the public subscription form."""

    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

class ContactCreate(BaseModel):
    """Contact created directly by an admin (import, manual entry)."""

    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    status: ContactStatus = ContactStatus.pending
    tags: List[str] = Field(default_factory=list)


class ContactUpdate(BaseModel):
    """Tokens are not editable: old unsubscribe links must keep working."""

    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    status: Optional[ContactStatus] = None
    tags: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def email_not_null(cls, v):
        if v is None:
            raise ValueError("email cannot be null")
        return v


class ContactResponse(BaseModel):
    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: ContactStatus
    tags: List[str] = Field(default_factory=list)
    subscribed_ip: Optional[str] = None
    subscribed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    last_email_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=255)
    preheader: Optional[str] = Field(None, max_length=255)
    html_content: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list, description="Target contacts carrying any of these tags")


class CampaignUpdate(BaseModel):
    """Status and counters are owned by the delivery engine."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    preheader: Optional[str] = Field(None, max_length=255)
    html_content: Optional[str] = Field(None, min_length=1)
    tags: Optional[List[str]] = None

    @field_validator("name", "subject", "html_content")
    @classmethod
    def required_fields_not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class CampaignResponse(BaseModel):
    id: UUID
    name: str
    subject: str
    preheader: Optional[str] = None
    html_content: str
    tags: List[str] = Field(default_factory=list)
    status: CampaignStatus
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    total_recipients: int = 0
    total_sent: int = 0
    total_opened: int = 0
    total_clicked: int = 0
    total_bounced: int = 0
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampaignSendRequest(BaseModel):
    """
    One of three actions, checked in this order:
    - test_email: send a [TEST] copy to one address, nothing is recorded
    - schedule: mark the campaign scheduled for that time
    - neither: send now (resend=True re-claims a campaign left in "sending")
    """

    test_email: Optional[EmailStr] = None
    schedule: Optional[datetime] = None
    resend: bool = False


class DeliveryResult(BaseModel):
    campaign_id: UUID
    status: CampaignStatus
    total_recipients: int
    total_sent: int
    total_bounced: int


class CampaignSendResponse(BaseModel):
    message: str
    result: Optional[DeliveryResult] = None


# ---------------------------------------------------------------------------
# Events / stats
# ---------------------------------------------------------------------------

class EventResponse(BaseModel):
    id: UUID
    campaign_id: Optional[UUID] = None
    contact_id: UUID
    event_type: EventType
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class CampaignStatsResponse(BaseModel):
    total_recipients: int
    total_sent: int
    total_opened: int
    total_clicked: int
    total_bounced: int
    open_rate: float
    click_rate: float
    events: List[EventResponse]
