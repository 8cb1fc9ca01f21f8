"""Newsletter Scheduler - delivers scheduled campaigns once they are due.

Runs every NEWSLETTER_SCHEDULER_INTERVAL_MINUTES (5 by default) on the
application's event loop. Each tick loads scheduled campaigns and hands the
ones whose scheduled_for has passed to the delivery engine. A campaign that
fails is logged and the tick carries on with the next one.
"""

import logging
from typing import Optional, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session_maker
from app.services import newsletter_store as store
from app.services.newsletter_delivery import send_campaign_if_due
from app.services.sendgrid_service import SendGridService

logger = logging.getLogger(__name__)

JOB_ID = "newsletter_scheduled_campaigns"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def process_scheduled_campaigns(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    email_service: Optional[SendGridService] = None,
) -> dict:
    """
    Main job: send every scheduled campaign that is due.

    Returns a summary dict with the number of due, sent and failed campaigns.
    """
    session_factory = session_factory or async_session_maker
    email_service = email_service or SendGridService()
    due = 0
    processed = 0
    errors = 0

    try:
        async with session_factory() as db:
            campaign_ids = [campaign.id for campaign in await store.get_due_campaigns(db)]
            due = len(campaign_ids)
            if due:
                logger.info(f"Found {due} scheduled campaigns due for sending")

            for campaign_id in campaign_ids:
                try:
                    result = await send_campaign_if_due(db, campaign_id, email_service)
                    if result is not None:
                        processed += 1
                except Exception as e:
                    errors += 1
                    await db.rollback()
                    logger.error(f"Error sending scheduled campaign {campaign_id}: {e}", exc_info=True)

    except Exception as e:
        logger.error(f"Fatal error in newsletter scheduler tick: {e}", exc_info=True)

    if due:
        logger.info(f"Scheduled campaign check complete. Sent: {processed}, Errors: {errors}")
    return {"due": due, "processed": processed, "errors": errors}


def start_newsletter_scheduler():
    """Start the newsletter scheduler."""
    global scheduler

    scheduler = get_scheduler()

    scheduler.add_job(
        process_scheduled_campaigns,
        IntervalTrigger(minutes=settings.NEWSLETTER_SCHEDULER_INTERVAL_MINUTES),
        id=JOB_ID,
        name="Send scheduled newsletter campaigns",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info(
            f"Newsletter scheduler started (every {settings.NEWSLETTER_SCHEDULER_INTERVAL_MINUTES} minutes)"
        )


def stop_newsletter_scheduler():
    """Stop the newsletter scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Newsletter scheduler stopped")
    scheduler = None


async def run_scheduled_campaigns_now(email_service: Optional[SendGridService] = None):
    """Run one scheduler tick on demand (admin endpoint)."""
    logger.info("Manual scheduled campaign check triggered")
    summary = await process_scheduled_campaigns(email_service=email_service)
    return {"status": "completed", "message": "Scheduled campaign check completed", **summary}
