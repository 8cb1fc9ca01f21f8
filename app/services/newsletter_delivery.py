"""
Campaign delivery engine.

``send_campaign`` delivers one campaign to every confirmed contact whose tags
intersect the campaign tags, one recipient at a time:

1. claim the campaign (draft/scheduled -> sending) with a conditional UPDATE,
   so a concurrent trigger for the same campaign gets a ConflictError
2. resolve recipients; nothing is attempted if this fails
3. render and send each email; a failed send becomes a ``bounced`` event and
   the loop moves on
4. finalize: all failed -> draft, some failed -> stays sending for review,
   none failed -> sent
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    NotFoundError,
    ConflictError,
    ExternalServiceError,
    ServiceUnavailableError,
)
from app.models.newsletter import NewsletterCampaign, CampaignStatus, EventType
from app.schemas.newsletter import DeliveryResult
from app.services import newsletter_store as store
from app.services.newsletter_templates import (
    TEST_SUBJECT_PREFIX,
    build_tracking_url,
    build_unsubscribe_url,
    generate_email_template,
)
from app.services.sendgrid_service import SendGridService

logger = logging.getLogger(__name__)


def final_status(attempted: int, failed: int) -> CampaignStatus:
    """Status a campaign ends in after one delivery run."""
    if attempted > 0 and failed == attempted:
        return CampaignStatus.draft
    if failed > 0:
        return CampaignStatus.sending
    return CampaignStatus.sent


def render_campaign_email(campaign: NewsletterCampaign, contact_id, unsubscribe_token: str) -> str:
    return generate_email_template(
        campaign.html_content,
        unsubscribe_url=build_unsubscribe_url(unsubscribe_token),
        tracking_url=build_tracking_url(campaign.id, contact_id),
        preheader=campaign.preheader,
    )


async def send_campaign(
    db: AsyncSession,
    campaign_id,
    email_service: SendGridService,
    allow_resend: bool = False,
    due_before: Optional[datetime] = None,
) -> DeliveryResult:
    """
    Deliver a campaign to its current recipient set.

    With ``due_before`` the campaign is only claimed if it is still scheduled
    for that time or earlier (scheduler path).

    Raises:
        NotFoundError: unknown campaign id
        ServiceUnavailableError: email provider not configured
        ConflictError: campaign already sending or sent
    """
    campaign = await store.get_campaign(db, campaign_id)
    if not campaign:
        raise NotFoundError("Campaign", str(campaign_id))

    if not email_service.is_configured:
        raise ServiceUnavailableError("Email provider is not configured")

    previous_status = campaign.status
    if due_before is not None:
        claimed = await store.claim_due_campaign(db, campaign.id, due_before)
    else:
        claimed = await store.claim_campaign(db, campaign.id, allow_resend=allow_resend)
    if not claimed:
        await db.refresh(campaign)
        raise ConflictError(f"Campaign cannot be sent while in status '{campaign.status.value}'")
    await db.refresh(campaign)

    try:
        recipients = await store.get_contacts_by_tags(db, campaign.tags)
    except Exception:
        logger.error(f"Recipient resolution failed for campaign {campaign.id}", exc_info=True)
        await db.rollback()
        campaign.status = previous_status
        await db.commit()
        raise

    logger.info(f"Sending campaign {campaign.id} to {len(recipients)} recipients")

    sent = 0
    failed = 0
    for contact in recipients:
        html = render_campaign_email(campaign, contact.id, contact.unsubscribe_token)
        try:
            response = await email_service.send_email(
                to=contact.email,
                subject=campaign.subject,
                html_body=html,
                to_name=contact.first_name,
            )
        except Exception as e:
            logger.error(f"Send to contact {contact.id} raised: {e}", exc_info=True)
            response = {"success": False, "error": str(e), "message_id": None}

        if response.get("success"):
            sent += 1
            contact.last_email_sent_at = store.utc_now()
            store.record_event(
                db,
                contact.id,
                EventType.sent,
                campaign_id=campaign.id,
                metadata={"message_id": response.get("message_id")},
            )
        else:
            failed += 1
            store.record_event(
                db,
                contact.id,
                EventType.bounced,
                campaign_id=campaign.id,
                metadata={"error": response.get("error") or "unknown error"},
            )
        await db.commit()

    campaign.status = final_status(len(recipients), failed)
    campaign.total_recipients = len(recipients)
    campaign.total_sent = sent
    campaign.total_bounced = failed
    if sent > 0:
        campaign.sent_at = store.utc_now()
    await db.commit()
    await db.refresh(campaign)

    logger.info(
        f"Campaign {campaign.id} finished: {sent} sent, {failed} failed, status={campaign.status.value}"
    )

    return DeliveryResult(
        campaign_id=campaign.id,
        status=campaign.status,
        total_recipients=campaign.total_recipients,
        total_sent=campaign.total_sent,
        total_bounced=campaign.total_bounced,
    )


async def send_test_email(
    campaign: NewsletterCampaign,
    to_email: str,
    email_service: SendGridService,
) -> Dict[str, Any]:
    """Send a [TEST] copy of the campaign to one address. Nothing is recorded."""
    if not email_service.is_configured:
        raise ServiceUnavailableError("Email provider is not configured")

    html = render_campaign_email(campaign, "test", "test-token")
    response = await email_service.send_email(
        to=to_email,
        subject=f"{TEST_SUBJECT_PREFIX}{campaign.subject}",
        html_body=html,
    )
    if not response.get("success"):
        raise ExternalServiceError("SendGrid", response.get("error") or "test email was not accepted")

    logger.info(f"Test email for campaign {campaign.id} sent to {to_email}")
    return response


async def send_campaign_if_due(
    db: AsyncSession,
    campaign_id,
    email_service: SendGridService,
    now: Optional[datetime] = None,
) -> Optional[DeliveryResult]:
    """
    Scheduler entry point: deliver a campaign that is still scheduled and due.

    Returns None when it was claimed elsewhere, rescheduled or unscheduled
    since the tick listed it.
    """
    try:
        return await send_campaign(db, campaign_id, email_service, due_before=now or store.utc_now())
    except ConflictError:
        logger.info(f"Campaign {campaign_id} no longer due or already claimed, skipping")
        return None
