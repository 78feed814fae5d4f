"""
SCHEDULER BOOTSTRAP

Initializes and manages the APScheduler instance.
Scheduler is orchestration-only and contains no business logic.
"""

import logging

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from portfolio_engine.config import settings
from portfolio_engine.scheduler.jobs import expire_recommendations_job, run_overnight_batch_job

_logger = logging.getLogger(__name__)

_SCHEDULER: AsyncIOScheduler | None = None


def start_scheduler() -> AsyncIOScheduler:
    """
    Start the scheduler and register all jobs.
    Must be called with a running asyncio event loop.
    """
    global _SCHEDULER

    if _SCHEDULER is not None:
        return _SCHEDULER

    scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.TIMEZONE))

    # ------------------------------------------------------------
    # OVERNIGHT BATCH
    # Daily @ OVERNIGHT_JOB_HOUR:OVERNIGHT_JOB_MINUTE
    # ------------------------------------------------------------
    scheduler.add_job(
        run_overnight_batch_job,
        trigger=CronTrigger(hour=settings.OVERNIGHT_JOB_HOUR, minute=settings.OVERNIGHT_JOB_MINUTE),
        id="overnight_batch_job",
        name="Overnight scoring and recommendations",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    # ------------------------------------------------------------
    # RECOMMENDATION EXPIRY
    # ------------------------------------------------------------
    scheduler.add_job(
        expire_recommendations_job,
        trigger=IntervalTrigger(hours=1),
        id="expire_recommendations_job",
        name="Expire stale recommendations",
        replace_existing=True,
    )

    scheduler.start()
    _SCHEDULER = scheduler

    _logger.info("✅ Scheduler started with all jobs registered")
    for job in scheduler.get_jobs():
        _logger.info(f"  • {job.name} - Next run: {job.next_run_time}")
    return scheduler


def shutdown_scheduler():
    """
    Shutdown the scheduler safely.
    """
    global _SCHEDULER

    if _SCHEDULER:
        _SCHEDULER.shutdown(wait=False)
        _SCHEDULER = None
        _logger.info("🛑 Scheduler shut down")
