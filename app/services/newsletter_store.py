"""Data access for newsletter contacts, campaigns and events."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.newsletter import (
    NewsletterContact,
    NewsletterCampaign,
    NewsletterEvent,
    ContactStatus,
    CampaignStatus,
    EventType,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


# Contacts


async def get_contact(db: AsyncSession, contact_id) -> Optional[NewsletterContact]:
    contact_uuid = parse_uuid(contact_id)
    if contact_uuid is None:
        return None
    result = await db.execute(select(NewsletterContact).where(NewsletterContact.id == contact_uuid))
    return result.scalar_one_or_none()


async def get_contact_by_email(db: AsyncSession, email: str) -> Optional[NewsletterContact]:
    result = await db.execute(select(NewsletterContact).where(NewsletterContact.email == email))
    return result.scalar_one_or_none()


async def get_contact_by_confirm_token(db: AsyncSession, token: str) -> Optional[NewsletterContact]:
    """Only a pending contact can redeem its confirmation token."""
    result = await db.execute(
        select(NewsletterContact).where(
            NewsletterContact.confirm_token == token,
            NewsletterContact.status == ContactStatus.pending,
        )
    )
    return result.scalar_one_or_none()


async def get_contact_by_unsubscribe_token(db: AsyncSession, token: str) -> Optional[NewsletterContact]:
    result = await db.execute(select(NewsletterContact).where(NewsletterContact.unsubscribe_token == token))
    return result.scalar_one_or_none()


async def list_contacts(db: AsyncSession, status: Optional[ContactStatus] = None) -> Sequence[NewsletterContact]:
    query = select(NewsletterContact)
    if status is not None:
        query = query.where(NewsletterContact.status == status)
    query = query.order_by(NewsletterContact.created_at.desc(), NewsletterContact.email)
    result = await db.execute(query)
    return result.scalars().all()


def tags_intersect(contact_tags: Optional[Iterable[str]], target_tags: Optional[Iterable[str]]) -> bool:
    return bool(set(contact_tags or ()) & set(target_tags or ()))


async def get_contacts_by_tags(db: AsyncSession, tags: Optional[Iterable[str]]) -> list[NewsletterContact]:
    """
    Confirmed contacts sharing at least one tag with ``tags``.

    No tags means no recipients. Matching runs in Python so JSON columns
    behave the same on PostgreSQL and SQLite.
    """
    target = set(tags or ())
    if not target:
        return []

    result = await db.execute(
        select(NewsletterContact)
        .where(NewsletterContact.status == ContactStatus.confirmed)
        .order_by(NewsletterContact.email)
    )
    return [contact for contact in result.scalars().all() if tags_intersect(contact.tags, target)]


# Campaigns


async def get_campaign(db: AsyncSession, campaign_id) -> Optional[NewsletterCampaign]:
    campaign_uuid = parse_uuid(campaign_id)
    if campaign_uuid is None:
        return None
    result = await db.execute(
        select(NewsletterCampaign)
        .where(NewsletterCampaign.id == campaign_uuid)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_campaigns(db: AsyncSession) -> Sequence[NewsletterCampaign]:
    result = await db.execute(select(NewsletterCampaign).order_by(NewsletterCampaign.created_at.desc()))
    return result.scalars().all()


async def get_due_campaigns(db: AsyncSession, now: Optional[datetime] = None) -> list[NewsletterCampaign]:
    """Scheduled campaigns whose scheduled_for is at or before now."""
    now = now or utc_now()
    result = await db.execute(
        select(NewsletterCampaign)
        .where(NewsletterCampaign.status == CampaignStatus.scheduled)
        .order_by(NewsletterCampaign.scheduled_for)
    )
    return [
        campaign
        for campaign in result.scalars().all()
        if campaign.scheduled_for is not None and as_utc(campaign.scheduled_for) <= now
    ]


async def claim_campaign(db: AsyncSession, campaign_id: uuid.UUID, allow_resend: bool = False) -> bool:
    """
    Move a campaign to ``sending`` only if it is still claimable.

    Returns False when another trigger already claimed it (or it was sent).
    """
    claimable = [CampaignStatus.draft, CampaignStatus.scheduled]
    if allow_resend:
        claimable.append(CampaignStatus.sending)

    result = await db.execute(
        update(NewsletterCampaign)
        .where(NewsletterCampaign.id == campaign_id, NewsletterCampaign.status.in_(claimable))
        .values(status=CampaignStatus.sending, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def claim_due_campaign(db: AsyncSession, campaign_id: uuid.UUID, now: Optional[datetime] = None) -> bool:
    """
    Scheduler claim: ``scheduled`` -> ``sending`` only while scheduled_for <= now.

    A campaign rescheduled or unscheduled after the tick listed it is not claimed.
    """
    now = now or utc_now()
    result = await db.execute(
        update(NewsletterCampaign)
        .where(
            NewsletterCampaign.id == campaign_id,
            NewsletterCampaign.status == CampaignStatus.scheduled,
            NewsletterCampaign.scheduled_for.is_not(None),
            NewsletterCampaign.scheduled_for <= now,
        )
        .values(status=CampaignStatus.sending, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def increment_opened(db: AsyncSession, campaign_id: uuid.UUID) -> None:
    await db.execute(
        update(NewsletterCampaign)
        .where(NewsletterCampaign.id == campaign_id)
        .values(total_opened=NewsletterCampaign.total_opened + 1)
        .execution_options(synchronize_session=False)
    )


# Events


def record_event(
    db: AsyncSession,
    contact_id: uuid.UUID,
    event_type: EventType,
    campaign_id: Optional[uuid.UUID] = None,
    metadata: Optional[dict] = None,
) -> NewsletterEvent:
    """Append an event to the session; the caller commits."""
    event = NewsletterEvent(
        id=uuid.uuid4(),
        campaign_id=campaign_id,
        contact_id=contact_id,
        event_type=event_type,
        event_metadata=metadata or {},
        created_at=utc_now(),
    )
    db.add(event)
    return event


async def list_campaign_events(db: AsyncSession, campaign_id: uuid.UUID, limit: int = 100) -> Sequence[NewsletterEvent]:
    result = await db.execute(
        select(NewsletterEvent)
        .where(NewsletterEvent.campaign_id == campaign_id)
        .order_by(NewsletterEvent.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def list_contact_events(db: AsyncSession, contact_id: uuid.UUID) -> Sequence[NewsletterEvent]:
    result = await db.execute(
        select(NewsletterEvent)
        .where(NewsletterEvent.contact_id == contact_id)
        .order_by(NewsletterEvent.created_at.desc())
    )
    return result.scalars().all()
