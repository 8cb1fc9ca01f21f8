"""
Public newsletter endpoints.

- ``router`` (mounted under /api/newsletter): double opt-in subscription
- ``pages_router`` (mounted at the site root): the confirm and unsubscribe
  links and the open-tracking pixel embedded in emails

The pages return HTML and the pixel returns a GIF; neither goes through
the problem-details handlers.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError

from app.api.deps import DbSession, EmailService
from app.exceptions import BusinessRuleError, ExternalServiceError, InvalidPayloadError
from app.models.newsletter import NewsletterContact, ContactStatus, EventType
from app.schemas.newsletter import SubscribeRequest, MessageResponse
from app.services import newsletter_store as store
from app.services.newsletter_templates import (
    CONFIRMATION_SUBJECT,
    TRACKING_PIXEL,
    TRACKING_PIXEL_HEADERS,
    build_confirm_url,
    generate_token,
    render_confirmation_email,
    render_confirmed_page,
    render_invalid_confirm_page,
    render_invalid_unsubscribe_page,
    render_unsubscribed_page,
)

logger = logging.getLogger(__name__)

router = APIRouter()
pages_router = APIRouter()


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _field_errors(exc: ValidationError) -> list[dict]:
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]) or "body",
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


async def _parse_subscribe_payload(request: Request) -> SubscribeRequest:
    try:
        body = await request.json()
    except ValueError:
        raise InvalidPayloadError("Dati non validi")
    try:
        return SubscribeRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidPayloadError("Dati non validi", errors=_field_errors(e))


@router.post("/subscribe", response_model=MessageResponse)
async def subscribe(request: Request, db: DbSession, email_service: EmailService):
    """
    Start a double opt-in subscription.

    New addresses are created pending; unsubscribed contacts are reactivated
    with fresh tokens. Both get a confirmation email.
    """
    data = await _parse_subscribe_payload(request)
    ip = _client_ip(request)

    contact = await store.get_contact_by_email(db, data.email)
    if contact:
        if contact.status == ContactStatus.confirmed:
            raise BusinessRuleError("Sei già iscritto alla newsletter")
        if contact.status == ContactStatus.pending:
            raise BusinessRuleError("Controlla la tua email per confermare l'iscrizione")
        if contact.status != ContactStatus.unsubscribed:
            # bounced and spam addresses stay suppressed
            raise BusinessRuleError("Questo indirizzo non può essere iscritto alla newsletter")

        contact.status = ContactStatus.pending
        contact.confirm_token = generate_token()
        contact.unsubscribe_token = generate_token()
        contact.first_name = data.first_name or contact.first_name
        contact.last_name = data.last_name or contact.last_name
        contact.subscribed_ip = ip
        contact.subscribed_at = store.utc_now()
        contact.unsubscribed_at = None
        logger.info(f"Reactivating unsubscribed contact {contact.id}")
    else:
        contact = NewsletterContact(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            status=ContactStatus.pending,
            confirm_token=generate_token(),
            unsubscribe_token=generate_token(),
            tags=[],
            subscribed_ip=ip,
            subscribed_at=store.utc_now(),
        )
        db.add(contact)

    await db.commit()
    await db.refresh(contact)

    response = await email_service.send_email(
        to=contact.email,
        subject=CONFIRMATION_SUBJECT,
        html_body=render_confirmation_email(build_confirm_url(contact.confirm_token), contact.first_name),
        to_name=contact.first_name,
    )
    if not response.get("success"):
        logger.error(f"Confirmation email to contact {contact.id} failed: {response.get('error')}")
        raise ExternalServiceError("Email", "impossibile inviare l'email di conferma")

    logger.info(f"Confirmation email sent to contact {contact.id}")
    return MessageResponse(message="Controlla la tua email per confermare l'iscrizione")


@pages_router.get("/newsletter/confirm/{token}", response_class=HTMLResponse)
async def confirm_subscription(token: str, db: DbSession):
    contact = await store.get_contact_by_confirm_token(db, token)
    if not contact:
        return HTMLResponse(render_invalid_confirm_page(), status_code=404)

    contact.status = ContactStatus.confirmed
    contact.confirm_token = None
    contact.confirmed_at = store.utc_now()
    await db.commit()

    logger.info(f"Contact {contact.id} confirmed")
    return HTMLResponse(render_confirmed_page(contact.first_name))


@pages_router.get("/newsletter/unsubscribe/{token}", response_class=HTMLResponse)
async def unsubscribe(token: str, db: DbSession):
    """Idempotent: the token keeps working after the first click."""
    contact = await store.get_contact_by_unsubscribe_token(db, token)
    if not contact:
        return HTMLResponse(render_invalid_unsubscribe_page(), status_code=404)

    if contact.status != ContactStatus.unsubscribed:
        contact.status = ContactStatus.unsubscribed
        contact.unsubscribed_at = store.utc_now()
        await db.commit()
        logger.info(f"Contact {contact.id} unsubscribed")

    return HTMLResponse(render_unsubscribed_page(contact.first_name))


def _pixel_response() -> Response:
    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=TRACKING_PIXEL_HEADERS)


@pages_router.get("/track/open/{campaign_id}/{contact_id}")
async def track_open(campaign_id: str, contact_id: str, request: Request, db: DbSession):
    """Record an open and return a 1x1 GIF. Never fails towards the email client."""
    try:
        campaign = await store.get_campaign(db, campaign_id)
        contact = await store.get_contact(db, contact_id)
        if campaign and contact:
            store.record_event(
                db,
                contact.id,
                EventType.opened,
                campaign_id=campaign.id,
                metadata={"user_agent": request.headers.get("user-agent"), "ip": _client_ip(request)},
            )
            await store.increment_opened(db, campaign.id)
            await db.commit()
        else:
            logger.debug(f"Open pixel for unknown campaign/contact {campaign_id}/{contact_id}")
    except Exception as e:
        logger.error(f"Error tracking open for campaign {campaign_id}: {e}", exc_info=True)
        try:
            await db.rollback()
        except Exception:
            logger.warning("Rollback after failed open tracking also failed", exc_info=True)

    return _pixel_response()
