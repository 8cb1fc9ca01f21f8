"""
SendGrid Event Webhook.

SendGrid posts a JSON array of events. Configure the webhook to send
``Authorization: Bearer <SENDGRID_WEBHOOK_SECRET>``. Without a configured
secret the endpoint refuses everything (503).

Once the batch is authorized the response is always 200 so SendGrid never
retries; events that cannot be applied are logged and skipped.
"""

import hmac
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Request

from app.api.deps import DbSession
from app.config import settings
from app.exceptions import InvalidPayloadError, ServiceUnavailableError, UnauthorizedError
from app.models.newsletter import ContactStatus, EventType
from app.services import newsletter_store as store

logger = logging.getLogger(__name__)

sendgrid_router = APIRouter()

# SendGrid event type -> (contact status, event type)
EVENT_TRANSITIONS = {
    "bounce": (ContactStatus.bounced, EventType.bounced),
    "dropped": (ContactStatus.bounced, EventType.bounced),
    "spamreport": (ContactStatus.spam, EventType.spam),
    "unsubscribe": (ContactStatus.unsubscribed, EventType.unsubscribe),
}


def _check_authorization(authorization: Optional[str]) -> None:
    secret = settings.SENDGRID_WEBHOOK_SECRET
    if not secret:
        logger.error("SendGrid webhook called but SENDGRID_WEBHOOK_SECRET is not set")
        raise ServiceUnavailableError("Webhook not configured")

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("SendGrid webhook rejected: bad or missing bearer token")
        raise UnauthorizedError("Unauthorized")


def _event_metadata(event: dict) -> dict:
    metadata = {
        "sg_event": event.get("event"),
        "sg_message_id": event.get("sg_message_id"),
        "timestamp": event.get("timestamp"),
    }
    for key in ("reason", "status", "type"):
        if event.get(key) is not None:
            metadata[key] = event.get(key)
    return metadata


async def apply_event(db, event: Any) -> bool:
    """Apply one provider event. Returns True when it changed a contact."""
    if not isinstance(event, dict):
        logger.warning("Skipping malformed SendGrid event (not an object)")
        return False

    email = event.get("email")
    event_name = event.get("event")
    if not email or not event_name:
        logger.warning("Skipping SendGrid event without email or type")
        return False

    transition = EVENT_TRANSITIONS.get(event_name)
    if transition is None:
        logger.debug(f"Ignoring SendGrid event type {event_name}")
        return False

    contact = await store.get_contact_by_email(db, email)
    if not contact:
        logger.warning(f"SendGrid event {event_name} for unknown contact, skipping")
        return False

    new_status, event_type = transition
    contact.status = new_status
    if new_status == ContactStatus.unsubscribed:
        contact.unsubscribed_at = store.utc_now()
    store.record_event(db, contact.id, event_type, campaign_id=None, metadata=_event_metadata(event))
    await db.commit()

    logger.info(f"SendGrid {event_name}: contact {contact.id} -> {new_status.value}")
    return True


@sendgrid_router.post("")
async def handle_sendgrid_events(request: Request, db: DbSession):
    """Ingest a batch of SendGrid delivery events."""
    _check_authorization(request.headers.get("Authorization"))

    try:
        events = json.loads(await request.body())
    except ValueError:
        raise InvalidPayloadError("Invalid webhook payload")

    if not isinstance(events, list):
        raise InvalidPayloadError("Invalid webhook payload")

    applied = 0
    for event in events:
        try:
            if await apply_event(db, event):
                applied += 1
        except Exception as e:
            await db.rollback()
            logger.error(f"Error processing SendGrid event: {e}", exc_info=True)

    logger.info(f"SendGrid webhook processed {applied}/{len(events)} events")
    return {"received": True}
