"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from trendwatch.config import settings
from trendwatch.worker.tasks import task_runner

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Signal ingestion every settings.signal_ingest_interval_minutes
    - Daily decay recompute at settings.daily_recompute_hour (UTC)
    - Metadata refresh every settings.metadata_refresh_interval_days

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    ingest_interval = max(1, int(settings.signal_ingest_interval_minutes))
    refresh_days = max(1, int(settings.metadata_refresh_interval_days))

    scheduler.add_job(
        task_runner.ingest_signals,
        IntervalTrigger(minutes=ingest_interval),
        id="signal_ingest",
        name="Ingest source adapter signals",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    scheduler.add_job(
        task_runner.recalculate_scores,
        CronTrigger(hour=settings.daily_recompute_hour, minute=0),
        id="daily_decay",
        name="Recalculate decayed trend scores",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
        replace_existing=True,
    )

    scheduler.add_job(
        task_runner.refresh_metadata,
        IntervalTrigger(days=refresh_days),
        id="metadata_refresh",
        name="Refresh primary source ratings and prices",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: ingest every %d minutes, decay recompute daily at %02d:00 UTC, "
        "metadata refresh every %d days",
        ingest_interval,
        settings.daily_recompute_hour,
        refresh_days,
    )
    return scheduler
