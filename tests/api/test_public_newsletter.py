"""
Tests for the public newsletter endpoints: subscribe, confirm, unsubscribe
and the open-tracking pixel.
"""

import uuid

import pytest
from unittest.mock import patch
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.newsletter import (
    NewsletterCampaign,
    NewsletterContact,
    NewsletterEvent,
    ContactStatus,
    EventType,
)
from app.services import newsletter_store
from app.services.newsletter_templates import TRACKING_PIXEL
from tests.factories import (
    CampaignFactory,
    ConfirmedContactFactory,
    ContactFactory,
    UnsubscribedContactFactory,
)

SUBSCRIBE_URL = "/api/newsletter/subscribe"


async def _contact_by_email(db: AsyncSession, email: str) -> NewsletterContact:
    result = await db.execute(
        select(NewsletterContact)
        .where(NewsletterContact.email == email)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_creates_pending_contact_and_sends_confirmation(self, client: AsyncClient, test_db, mock_email):
        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com", "first_name": "Anna"})

        assert response.status_code == 200
        contact = await _contact_by_email(test_db, "a@x.com")
        assert contact.status == ContactStatus.pending
        assert contact.first_name == "Anna"
        assert contact.confirm_token and contact.unsubscribe_token
        assert contact.confirm_token != contact.unsubscribe_token
        assert contact.tags == []

        sent = mock_email._sent_emails[0]
        assert sent["to"] == "a@x.com"
        assert f"/newsletter/confirm/{contact.confirm_token}" in sent["html_body"]

    @pytest.mark.asyncio
    async def test_invalid_email_returns_field_errors(self, client: AsyncClient, mock_email):
        response = await client.post(SUBSCRIBE_URL, json={"email": "not-an-email"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VAL_002"
        assert body["errors"][0]["field"] == "email"
        assert mock_email._sent_emails == []

    @pytest.mark.asyncio
    async def test_missing_email_returns_400(self, client: AsyncClient):
        response = await client.post(SUBSCRIBE_URL, json={"first_name": "Anna"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_non_json_body_returns_400(self, client: AsyncClient):
        response = await client.post(SUBSCRIBE_URL, content=b"email=a@x.com")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_confirmed_contact_is_rejected(self, client: AsyncClient, test_db, mock_email):
        test_db.add(NewsletterContact(**ConfirmedContactFactory(email="a@x.com")))
        await test_db.commit()

        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com"})

        assert response.status_code == 400
        assert "già iscritto" in response.json()["detail"]
        assert mock_email._sent_emails == []

    @pytest.mark.asyncio
    async def test_pending_contact_is_not_mailed_again(self, client: AsyncClient, test_db, mock_email):
        contact = NewsletterContact(**ContactFactory(email="a@x.com"))
        test_db.add(contact)
        await test_db.commit()
        original_token = contact.confirm_token

        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com"})

        assert response.status_code == 400
        assert mock_email._sent_emails == []
        assert (await _contact_by_email(test_db, "a@x.com")).confirm_token == original_token

    @pytest.mark.asyncio
    async def test_unsubscribed_contact_is_reactivated_with_new_tokens(self, client: AsyncClient, test_db, mock_email):
        contact = NewsletterContact(**UnsubscribedContactFactory(email="a@x.com", first_name="Anna"))
        test_db.add(contact)
        await test_db.commit()
        old_tokens = {contact.confirm_token, contact.unsubscribe_token}

        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com"})

        assert response.status_code == 200
        contact = await _contact_by_email(test_db, "a@x.com")
        assert contact.status == ContactStatus.pending
        assert contact.first_name == "Anna"
        assert contact.confirm_token not in old_tokens
        assert contact.unsubscribe_token not in old_tokens
        assert contact.unsubscribed_at is None
        assert len(mock_email._sent_emails) == 1

    @pytest.mark.asyncio
    async def test_bounced_contact_stays_suppressed(self, client: AsyncClient, test_db, mock_email):
        test_db.add(NewsletterContact(**ContactFactory(email="a@x.com", status=ContactStatus.bounced)))
        await test_db.commit()

        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com"})

        assert response.status_code == 400
        assert mock_email._sent_emails == []

    @pytest.mark.asyncio
    async def test_confirmation_email_failure_returns_502_and_keeps_pending(self, client: AsyncClient, test_db, mock_email):
        mock_email.fail_all = True

        response = await client.post(SUBSCRIBE_URL, json={"email": "a@x.com"})

        assert response.status_code == 502
        assert (await _contact_by_email(test_db, "a@x.com")).status == ContactStatus.pending


class TestConfirm:

    @pytest.mark.asyncio
    async def test_confirm_token_is_single_use(self, client: AsyncClient, test_db):
        contact = NewsletterContact(**ContactFactory(email="a@x.com", first_name="Anna"))
        test_db.add(contact)
        await test_db.commit()
        token = contact.confirm_token

        first = await client.get(f"/newsletter/confirm/{token}")
        second = await client.get(f"/newsletter/confirm/{token}")

        assert first.status_code == 200
        assert "text/html" in first.headers["content-type"]
        assert "Iscrizione Confermata" in first.text
        assert second.status_code == 404
        assert "non valido" in second.text

        contact = await _contact_by_email(test_db, "a@x.com")
        assert contact.status == ContactStatus.confirmed
        assert contact.confirm_token is None
        assert contact.confirmed_at is not None

    @pytest.mark.asyncio
    async def test_unknown_token_returns_404_page(self, client: AsyncClient):
        response = await client.get("/newsletter/confirm/does-not-exist")
        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]


class TestUnsubscribe:

    @pytest.mark.asyncio
    async def test_unsubscribe_token_stays_valid(self, client: AsyncClient, test_db):
        contact = NewsletterContact(**ConfirmedContactFactory(email="a@x.com"))
        test_db.add(contact)
        await test_db.commit()
        token = contact.unsubscribe_token

        first = await client.get(f"/newsletter/unsubscribe/{token}")
        second = await client.get(f"/newsletter/unsubscribe/{token}")

        assert first.status_code == 200
        assert second.status_code == 200
        assert "Disiscrizione Completata" in second.text
        contact = await _contact_by_email(test_db, "a@x.com")
        assert contact.status == ContactStatus.unsubscribed
        assert contact.unsubscribe_token == token

    @pytest.mark.asyncio
    async def test_unknown_token_returns_404_page(self, client: AsyncClient):
        response = await client.get("/newsletter/unsubscribe/nope")
        assert response.status_code == 404
        assert "non valido" in response.text


class TestTrackOpen:

    @pytest.mark.asyncio
    async def test_records_open_and_returns_pixel(self, client: AsyncClient, test_db):
        contact = NewsletterContact(**ConfirmedContactFactory(email="a@x.com"))
        campaign = NewsletterCampaign(**CampaignFactory())
        test_db.add_all([contact, campaign])
        await test_db.commit()

        response = await client.get(
            f"/track/open/{campaign.id}/{contact.id}",
            headers={"User-Agent": "Thunderbird/115"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.content == TRACKING_PIXEL
        assert "no-store" in response.headers["cache-control"]

        await test_db.refresh(campaign)
        assert campaign.total_opened == 1
        events = (await test_db.execute(select(NewsletterEvent))).scalars().all()
        assert len(events) == 1
        assert events[0].event_type == EventType.opened
        assert events[0].event_metadata["user_agent"] == "Thunderbird/115"

    @pytest.mark.asyncio
    async def test_unknown_ids_still_return_pixel(self, client: AsyncClient):
        response = await client.get(f"/track/open/{uuid.uuid4()}/not-a-uuid")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"

    @pytest.mark.asyncio
    async def test_insert_failure_still_returns_pixel(self, client: AsyncClient, test_db):
        contact = NewsletterContact(**ConfirmedContactFactory(email="a@x.com"))
        campaign = NewsletterCampaign(**CampaignFactory())
        test_db.add_all([contact, campaign])
        await test_db.commit()

        with patch.object(newsletter_store, "record_event", side_effect=RuntimeError("disk full")):
            response = await client.get(f"/track/open/{campaign.id}/{contact.id}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        await test_db.refresh(campaign)
        assert campaign.total_opened == 0
