"""Newsletter models: contacts, campaigns and the append-only event log."""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Enum, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import enum
import uuid

from app.database import Base


class ContactStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    unsubscribed = "unsubscribed"
    bounced = "bounced"
    spam = "spam"


class CampaignStatus(str, enum.Enum):
    draft = "draft"
    scheduled = "scheduled"
    sending = "sending"
    sent = "sent"


class EventType(str, enum.Enum):
    sent = "sent"
    opened = "opened"
    bounced = "bounced"
    unsubscribe = "unsubscribe"
    spam = "spam"


class NewsletterContact(Base):
    """Subscriber with double opt-in tokens and targeting tags."""

    __tablename__ = "newsletter_contacts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))

    status = Column(
        Enum(ContactStatus, native_enum=False, length=20),
        nullable=False,
        default=ContactStatus.pending,
        index=True,
    )

    # confirm_token is cleared once redeemed; unsubscribe_token is embedded in every sent email
    confirm_token = Column(String(64), unique=True)
    unsubscribe_token = Column(String(64), unique=True)

    tags = Column(JSON, default=list)  # ["beginner", "surf-camp", ...]

    subscribed_ip = Column(String(45))
    subscribed_at = Column(DateTime(timezone=True), server_default=func.now())
    confirmed_at = Column(DateTime(timezone=True))
    unsubscribed_at = Column(DateTime(timezone=True))
    last_email_sent_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<NewsletterContact {self.email} {self.status}>"


class NewsletterCampaign(Base):
    """A single newsletter send job, targeted by tag."""

    __tablename__ = "newsletter_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    preheader = Column(String(255))
    html_content = Column(Text, nullable=False)

    # Targeting: confirmed contacts sharing at least one tag
    tags = Column(JSON, default=list)

    status = Column(
        Enum(CampaignStatus, native_enum=False, length=20),
        nullable=False,
        default=CampaignStatus.draft,
        index=True,
    )
    scheduled_for = Column(DateTime(timezone=True))
    sent_at = Column(DateTime(timezone=True))

    # Metrics
    total_recipients = Column(Integer, default=0)
    total_sent = Column(Integer, default=0)
    total_opened = Column(Integer, default=0)
    total_clicked = Column(Integer, default=0)
    total_bounced = Column(Integer, default=0)

    created_by = Column(Integer, ForeignKey("api_users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<NewsletterCampaign {self.name} {self.status}>"


class NewsletterEvent(Base):
    """Append-only lifecycle record. campaign_id is null for webhook events."""

    __tablename__ = "newsletter_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    campaign_id = Column(
        UUID(as_uuid=True),
        ForeignKey("newsletter_campaigns.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    contact_id = Column(
        UUID(as_uuid=True),
        ForeignKey("newsletter_contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(Enum(EventType, native_enum=False, length=20), nullable=False, index=True)
    event_metadata = Column("metadata", JSON, default=dict)  # bounce reason, user agent, sg_message_id
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<NewsletterEvent {self.event_type} contact={self.contact_id}>"
