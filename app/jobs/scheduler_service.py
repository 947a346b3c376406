import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.jobs.sheet_sync import LeadSyncService

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sheet_sync_leads"


async def run_sheet_sync(sync_service: LeadSyncService) -> bool:
    """Scheduled entry point; errors are logged so the scheduler keeps running."""
    logger.info("Starting scheduled leads sync")
    try:
        return await sync_service.sync_all()
    except Exception as e:
        logger.exception("Scheduled leads sync failed: %s", e)
        return False


def build_scheduler(sync_service: LeadSyncService, interval_minutes: int) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_sheet_sync,
        IntervalTrigger(minutes=interval_minutes),
        args=[sync_service],
        id=SYNC_JOB_ID,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    try:
        scheduler.start()
        logger.info("✅ Sheet sync scheduler started")
    except Exception as e:
        logger.error(f"❌ Failed to start scheduler: {e}")
        raise


def stop_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    """Stop the scheduler gracefully."""
    if scheduler is None or not scheduler.running:
        return
    try:
        scheduler.shutdown(wait=False)
        logger.info("Sheet sync scheduler stopped")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}")
        raise


def is_healthy(
    scheduler: Optional[AsyncIOScheduler],
    sync_service: LeadSyncService,
    interval_minutes: int,
    started_at: Optional[datetime] = None,
) -> bool:
    """Check if the scheduler is running and a pass completed recently enough.

    Before the first completed pass, the scheduler start time is the reference.
    """
    if scheduler is None:
        return True  # Consider it healthy if not enabled
    if not scheduler.running:
        logger.error("Sheet sync scheduler is not running")
        return False

    report = sync_service.last_report
    last_pass = report.finished_at if report and report.finished_at else started_at
    if last_pass and datetime.now(timezone.utc) - last_pass > timedelta(minutes=interval_minutes * 3):
        logger.error("No completed sheet sync in the last %d minutes", interval_minutes * 3)
        return False
    return True
