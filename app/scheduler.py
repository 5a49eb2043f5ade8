"""
APScheduler setup for the monitoring cycles.

Runs inside the web process. The cron HTTP endpoints trigger the same
cycles for deployments that prefer an external scheduler.
"""

import logging
import os
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.memory import MemoryJobStore

from app.config import get_settings
from app.container import get_services

# Configure logging
logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

settings = get_settings()


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the global scheduler instance."""
    global scheduler
    if scheduler is None:
        # Get timezone from TZ environment variable, default to UTC
        tz = os.environ.get('TZ', 'UTC')
        logger.info(f"Scheduler using timezone: {tz}")

        scheduler = AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            timezone=tz
        )

        _setup_scheduled_jobs()

    return scheduler


def _setup_scheduled_jobs():
    """Setup the monitoring jobs."""

    scheduler.add_job(
        check_prices_job,
        trigger=CronTrigger(hour=settings.price_check_cron_hours, minute=0),
        id='price_check',
        name='Price Alert Check',
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        check_flights_job,
        trigger=IntervalTrigger(minutes=settings.flight_check_interval_minutes),
        id='flight_status_check',
        name='Flight Status Check',
        replace_existing=True,
        max_instances=1,
    )

    if settings.weekly_summary_enabled:
        scheduler.add_job(
            weekly_summary_job,
            trigger=CronTrigger(day_of_week='mon', hour=9, minute=0),
            id='weekly_summary',
            name='Weekly Summary (Mon 9:00)',
            replace_existing=True,
            max_instances=1,
        )

    logger.info("Scheduled jobs configured:")
    logger.info(f"  - Price check: hours {settings.price_check_cron_hours} on the hour")
    logger.info(f"  - Flight status check: every {settings.flight_check_interval_minutes} minutes")
    if settings.weekly_summary_enabled:
        logger.info("  - Weekly summary: Monday 9:00 AM")


async def check_prices_job():
    """Re-price every active alert."""
    logger.info("Starting scheduled price check")
    try:
        summary = await get_services().price_monitor.check_all_alerts()
        logger.info(f"Scheduled price check finished: {summary}")
    except Exception as e:
        logger.error(f"Error in scheduled price check: {e}")


async def check_flights_job():
    """Refresh the status of every tracked flight."""
    logger.info("Starting scheduled flight status check")
    try:
        summary = await get_services().flight_tracker.check_all_tracked_flights()
        logger.info(f"Scheduled flight status check finished: {summary}")
    except Exception as e:
        logger.error(f"Error in scheduled flight status check: {e}")


async def weekly_summary_job():
    logger.info("Sending weekly summaries")
    try:
        await get_services().price_monitor.send_weekly_summaries()
    except Exception as e:
        logger.error(f"Error sending weekly summaries: {e}")


def start_scheduler():
    """Start the scheduler (call this from FastAPI startup)."""
    scheduler_instance = get_scheduler()

    if not scheduler_instance.running:
        scheduler_instance.start()
        logger.info("APScheduler started successfully")

        # Log next job times
        for job in scheduler_instance.get_jobs():
            next_run = job.next_run_time
            logger.info(f"Next '{job.name}': {next_run}")
    else:
        logger.warning("Scheduler already running")


def stop_scheduler():
    """Stop the scheduler (call this from FastAPI shutdown)."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")
        scheduler = None


def get_scheduler_status() -> dict:
    """Scheduler state for the health endpoint."""
    if scheduler is None or not scheduler.running:
        return {
            "running": False,
            "jobs": [],
            "next_run": None
        }

    jobs = []
    next_run = None

    for job in scheduler.get_jobs():
        job_data = {
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "func": job.func.__name__ if job.func else None
        }
        jobs.append(job_data)

        # Find earliest next run
        if job.next_run_time and (next_run is None or job.next_run_time < next_run):
            next_run = job.next_run_time

    return {
        "running": True,
        "jobs": jobs,
        "next_run": next_run.isoformat() if next_run else None
    }
