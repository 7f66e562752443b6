"""
Periodic jobs: surgery reminders and data purge warnings
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from scheduling.service import SchedulingService

logger = logging.getLogger(__name__)


async def reminders_job(service: SchedulingService):
    """Send 24h and 2h reminders for approved cases"""
    try:
        sent = await service.send_reminders()
        if sent > 0:
            logger.info(f"Sent {sent} surgery reminder(s)")
    except Exception as e:
        logger.error(f"Reminder job failed: {e}", exc_info=True)


async def purge_warnings_job(service: SchedulingService):
    """Warn administrators about records nearing the retention limit"""
    try:
        sent = await service.send_purge_warnings()
        if sent > 0:
            logger.info(f"Sent {sent} purge warning(s)")
    except Exception as e:
        logger.error(f"Purge warning job failed: {e}", exc_info=True)


async def start_scheduler(service: SchedulingService) -> AsyncIOScheduler:
    """Start the job scheduler"""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        reminders_job,
        trigger=IntervalTrigger(minutes=settings.REMINDER_INTERVAL_MINUTES),
        args=[service],
        id='surgery_reminders',
        name='Surgery reminders',
        replace_existing=True
    )

    scheduler.add_job(
        purge_warnings_job,
        trigger=IntervalTrigger(minutes=settings.PURGE_CHECK_INTERVAL_MINUTES),
        args=[service],
        id='purge_warnings',
        name='Data purge warnings',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Scheduler started")

    return scheduler
