"""
Tests for Newsletter Scheduler.

Tests the periodic job that sends due scheduled campaigns.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.newsletter import NewsletterCampaign, NewsletterContact, CampaignStatus
from app.services import newsletter_delivery
from app.services.sendgrid_service import MockSendGridService
from app.tasks import newsletter_scheduler
from app.tasks.newsletter_scheduler import (
    JOB_ID,
    get_scheduler,
    process_scheduled_campaigns,
    start_newsletter_scheduler,
    stop_newsletter_scheduler,
)
from tests.factories import ConfirmedContactFactory, ScheduledCampaignFactory


def _now():
    return datetime.now(timezone.utc)


class TestSchedulerSetup:
    """Tests for scheduler initialization."""

    def test_get_scheduler_singleton(self):
        assert get_scheduler() is get_scheduler()

    @pytest.mark.asyncio
    async def test_start_registers_interval_job(self):
        start_newsletter_scheduler()
        try:
            job = get_scheduler().get_job(JOB_ID)
            assert job is not None
            assert isinstance(job.trigger, IntervalTrigger)
            assert job.trigger.interval == timedelta(minutes=5)
        finally:
            stop_newsletter_scheduler()
        assert newsletter_scheduler.scheduler is None


class TestProcessScheduledCampaigns:
    """Tests for the scheduler tick."""

    @pytest.mark.asyncio
    async def test_sends_only_due_campaigns(self, test_db: AsyncSession, session_factory):
        test_db.add(NewsletterContact(**ConfirmedContactFactory(email="a@example.com", tags=["beginner"])))
        due = NewsletterCampaign(**ScheduledCampaignFactory(scheduled_for=_now() - timedelta(minutes=1)))
        future = NewsletterCampaign(**ScheduledCampaignFactory(scheduled_for=_now() + timedelta(hours=2)))
        test_db.add_all([due, future])
        await test_db.commit()
        email = MockSendGridService()

        summary = await process_scheduled_campaigns(session_factory=session_factory, email_service=email)

        assert summary == {"due": 1, "processed": 1, "errors": 0}
        await test_db.refresh(due)
        await test_db.refresh(future)
        assert due.status == CampaignStatus.sent
        assert due.total_sent == 1
        assert future.status == CampaignStatus.scheduled
        assert len(email._sent_emails) == 1

    @pytest.mark.asyncio
    async def test_draft_campaigns_are_ignored(self, test_db: AsyncSession, session_factory):
        draft = NewsletterCampaign(
            **ScheduledCampaignFactory(status=CampaignStatus.draft, scheduled_for=_now() - timedelta(days=1))
        )
        test_db.add(draft)
        await test_db.commit()

        summary = await process_scheduled_campaigns(session_factory=session_factory, email_service=MockSendGridService())

        assert summary["due"] == 0

    @pytest.mark.asyncio
    async def test_one_failing_campaign_does_not_block_others(self, test_db: AsyncSession, session_factory):
        test_db.add(NewsletterContact(**ConfirmedContactFactory(email="a@example.com", tags=["beginner"])))
        first = NewsletterCampaign(**ScheduledCampaignFactory(scheduled_for=_now() - timedelta(minutes=10)))
        second = NewsletterCampaign(**ScheduledCampaignFactory(scheduled_for=_now() - timedelta(minutes=5)))
        test_db.add_all([first, second])
        await test_db.commit()

        real_send = newsletter_delivery.send_campaign_if_due

        first_id = first.id

        async def flaky_send(db, campaign_id, email_service):
            if campaign_id == first_id:
                raise RuntimeError("database hiccup")
            return await real_send(db, campaign_id, email_service)

        with patch.object(newsletter_scheduler, "send_campaign_if_due", flaky_send):
            summary = await process_scheduled_campaigns(
                session_factory=session_factory, email_service=MockSendGridService()
            )

        assert summary == {"due": 2, "processed": 1, "errors": 1}
        await test_db.refresh(first)
        await test_db.refresh(second)
        assert first.status == CampaignStatus.scheduled
        assert second.status == CampaignStatus.sent
