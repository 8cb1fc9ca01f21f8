from app.models.user import User
from app.models.newsletter import (
    NewsletterContact,
    NewsletterCampaign,
    NewsletterEvent,
    ContactStatus,
    CampaignStatus,
    EventType,
)

__all__ = [
    "User",
    "NewsletterContact",
    "NewsletterCampaign",
    "NewsletterEvent",
    "ContactStatus",
    "CampaignStatus",
    "EventType",
]
