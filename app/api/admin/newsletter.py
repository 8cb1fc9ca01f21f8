"""
Newsletter back office: contacts, campaigns, sending and statistics.

Every endpoint requires an admin or superuser.
"""

import logging
from datetime import timezone
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Query, status
from sqlalchemy import delete

from app.api.deps import DbSession, AdminUser, EmailService
from app.exceptions import NotFoundError, ConflictError
from app.models.newsletter import (
    NewsletterContact,
    NewsletterCampaign,
    NewsletterEvent,
    ContactStatus,
    CampaignStatus,
)
from app.schemas.newsletter import (
    ContactCreate,
    ContactUpdate,
    ContactResponse,
    CampaignCreate,
    CampaignUpdate,
    CampaignResponse,
    CampaignSendRequest,
    CampaignSendResponse,
    CampaignStatsResponse,
    EventResponse,
)
from app.services import newsletter_store as store
from app.services.newsletter_delivery import send_campaign, send_test_email
from app.services.newsletter_templates import generate_token
from app.tasks.newsletter_scheduler import run_scheduled_campaigns_now

logger = logging.getLogger(__name__)

router = APIRouter()

STATS_EVENT_LIMIT = 100


async def _get_contact_or_404(db, contact_id: UUID) -> NewsletterContact:
    contact = await store.get_contact(db, contact_id)
    if not contact:
        raise NotFoundError("Contact", str(contact_id))
    return contact


async def _get_campaign_or_404(db, campaign_id: UUID) -> NewsletterCampaign:
    campaign = await store.get_campaign(db, campaign_id)
    if not campaign:
        raise NotFoundError("Campaign", str(campaign_id))
    return campaign


async def _ensure_email_available(db, email: str, contact_id: Optional[UUID] = None) -> None:
    existing = await store.get_contact_by_email(db, email)
    if existing and existing.id != contact_id:
        raise ConflictError(f"A contact with email {email} already exists")


def _apply_contact_status(contact: NewsletterContact, new_status: ContactStatus) -> None:
    """Keep tokens and timestamps consistent with an admin status change."""
    if contact.status == new_status:
        return
    contact.status = new_status
    now = store.utc_now()
    if new_status == ContactStatus.pending:
        contact.confirm_token = contact.confirm_token or generate_token()
    elif new_status == ContactStatus.confirmed:
        contact.confirm_token = None
        contact.confirmed_at = now
    elif new_status == ContactStatus.unsubscribed:
        contact.unsubscribed_at = now


def _rate(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

@router.get("/contacts", response_model=List[ContactResponse])
async def list_contacts(
    db: DbSession,
    admin: AdminUser,
    status_filter: Optional[ContactStatus] = Query(None, alias="status"),
):
    """List contacts, optionally filtered by status."""
    return await store.list_contacts(db, status_filter)


@router.post("/contacts", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact_data: ContactCreate,
    db: DbSession,
    admin: AdminUser,
):
    """Create a contact directly, bypassing double opt-in when status says so."""
    await _ensure_email_available(db, contact_data.email)

    contact = NewsletterContact(
        email=contact_data.email,
        first_name=contact_data.first_name,
        last_name=contact_data.last_name,
        status=ContactStatus.pending,
        confirm_token=generate_token(),
        unsubscribe_token=generate_token(),
        tags=contact_data.tags,
        subscribed_at=store.utc_now(),
    )
    _apply_contact_status(contact, contact_data.status)
    db.add(contact)
    await db.commit()
    await db.refresh(contact)

    logger.info(f"Admin {admin.id} created contact {contact.id}")
    return contact


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
async def get_contact(contact_id: UUID, db: DbSession, admin: AdminUser):
    return await _get_contact_or_404(db, contact_id)


@router.get("/contacts/{contact_id}/events", response_model=List[EventResponse])
async def get_contact_events(contact_id: UUID, db: DbSession, admin: AdminUser):
    """Full event history of one contact, newest first."""
    contact = await _get_contact_or_404(db, contact_id)
    return await store.list_contact_events(db, contact.id)


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: UUID,
    contact_data: ContactUpdate,
    db: DbSession,
    admin: AdminUser,
):
    contact = await _get_contact_or_404(db, contact_id)

    update_data = contact_data.model_dump(exclude_unset=True)
    if update_data.get("email") and update_data["email"] != contact.email:
        await _ensure_email_available(db, update_data["email"], contact.id)

    new_status = update_data.pop("status", None)
    for field, value in update_data.items():
        if field == "tags" and value is None:
            value = []
        setattr(contact, field, value)
    if new_status is not None:
        _apply_contact_status(contact, new_status)

    await db.commit()
    await db.refresh(contact)
    return contact


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(contact_id: UUID, db: DbSession, admin: AdminUser):
    """Hard delete a contact and its events."""
    contact = await _get_contact_or_404(db, contact_id)

    await db.execute(delete(NewsletterEvent).where(NewsletterEvent.contact_id == contact.id))
    await db.delete(contact)
    await db.commit()
    logger.info(f"Admin {admin.id} deleted contact {contact_id}")


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

@router.get("/campaigns", response_model=List[CampaignResponse])
async def list_campaigns(db: DbSession, admin: AdminUser):
    return await store.list_campaigns(db)


@router.post("/campaigns", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_data: CampaignCreate,
    db: DbSession,
    admin: AdminUser,
):
    """Create a draft campaign."""
    campaign = NewsletterCampaign(
        **campaign_data.model_dump(),
        status=CampaignStatus.draft,
        total_recipients=0,
        total_sent=0,
        total_opened=0,
        total_clicked=0,
        total_bounced=0,
        created_by=admin.id,
    )
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)

    logger.info(f"Admin {admin.id} created campaign {campaign.id}")
    return campaign


@router.get("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(campaign_id: UUID, db: DbSession, admin: AdminUser):
    return await _get_campaign_or_404(db, campaign_id)


@router.patch("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: UUID,
    campaign_data: CampaignUpdate,
    db: DbSession,
    admin: AdminUser,
):
    """Edit campaign content. Status and counters are not editable here."""
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status in (CampaignStatus.sending, CampaignStatus.sent):
        raise ConflictError(f"Campaign cannot be edited in status '{campaign.status.value}'")

    for field, value in campaign_data.model_dump(exclude_unset=True).items():
        if field == "tags" and value is None:
            value = []
        setattr(campaign, field, value)

    await db.commit()
    await db.refresh(campaign)
    return campaign


@router.delete("/campaigns/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(campaign_id: UUID, db: DbSession, admin: AdminUser):
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status == CampaignStatus.sending:
        raise ConflictError("Campaign cannot be deleted while it is sending")

    await db.execute(delete(NewsletterEvent).where(NewsletterEvent.campaign_id == campaign.id))
    await db.delete(campaign)
    await db.commit()
    logger.info(f"Admin {admin.id} deleted campaign {campaign_id}")


@router.post("/campaigns/{campaign_id}/send", response_model=CampaignSendResponse)
async def send_campaign_endpoint(
    campaign_id: UUID,
    db: DbSession,
    admin: AdminUser,
    email_service: EmailService,
    payload: Optional[CampaignSendRequest] = None,
):
    """
    Send a test copy, schedule for later, or send now.

    ``test_email`` wins over ``schedule``; an empty body sends immediately.
    """
    payload = payload or CampaignSendRequest()
    campaign = await _get_campaign_or_404(db, campaign_id)

    if payload.test_email:
        await send_test_email(campaign, payload.test_email, email_service)
        return CampaignSendResponse(message=f"Test email sent to {payload.test_email}")

    if payload.schedule:
        if campaign.status in (CampaignStatus.sending, CampaignStatus.sent):
            raise ConflictError(f"Campaign in status '{campaign.status.value}' cannot be scheduled")
        scheduled_for = payload.schedule
        if scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.replace(tzinfo=timezone.utc)
        scheduled_for = scheduled_for.astimezone(timezone.utc)
        campaign.status = CampaignStatus.scheduled
        campaign.scheduled_for = scheduled_for
        await db.commit()
        logger.info(f"Admin {admin.id} scheduled campaign {campaign.id} for {scheduled_for.isoformat()}")
        return CampaignSendResponse(message="Campaign scheduled successfully")

    result = await send_campaign(db, campaign.id, email_service, allow_resend=payload.resend)
    if result.status == CampaignStatus.sent:
        message = "Campaign sent successfully"
    elif result.status == CampaignStatus.draft:
        message = "Every recipient failed; campaign reverted to draft"
    else:
        message = "Campaign partially sent; review failures before resending"
    return CampaignSendResponse(message=message, result=result)


@router.get("/campaigns/{campaign_id}/stats", response_model=CampaignStatsResponse)
async def get_campaign_stats(campaign_id: UUID, db: DbSession, admin: AdminUser):
    """Counters, open/click rates (percent of sent) and the latest events."""
    campaign = await _get_campaign_or_404(db, campaign_id)
    events = await store.list_campaign_events(db, campaign.id, limit=STATS_EVENT_LIMIT)

    total_sent = campaign.total_sent or 0
    return CampaignStatsResponse(
        total_recipients=campaign.total_recipients or 0,
        total_sent=total_sent,
        total_opened=campaign.total_opened or 0,
        total_clicked=campaign.total_clicked or 0,
        total_bounced=campaign.total_bounced or 0,
        open_rate=_rate(campaign.total_opened or 0, total_sent),
        click_rate=_rate(campaign.total_clicked or 0, total_sent),
        events=[EventResponse.model_validate(event) for event in events],
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@router.get("/provider")
async def get_provider_status(admin: AdminUser, email_service: EmailService):
    """Whether SendGrid is configured and which sender address is used."""
    return email_service.get_status()


@router.post("/scheduler/run")
async def run_scheduler_now(admin: AdminUser, email_service: EmailService):
    """Send every due scheduled campaign now instead of waiting for the next tick."""
    logger.info(f"Admin {admin.id} triggered the newsletter scheduler")
    return await run_scheduled_campaigns_now(email_service=email_service)
