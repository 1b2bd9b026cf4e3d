"""APScheduler configuration and job management."""

from datetime import datetime, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from monitoring.logging import get_logger

logger = get_logger(__name__)

_scheduler: AsyncIOScheduler | None = None

ALERT_CHECKS_JOB_ID = "alert_checks"
HOURLY_ROLLUP_JOB_ID = "statistics_rollup_hourly"
DAILY_ROLLUP_JOB_ID = "statistics_rollup_daily"
RETENTION_CLEANUP_JOB_ID = "retention_cleanup"


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global _scheduler

    if _scheduler is None:
        logger.info("Creating scheduler")
        _scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )

    return _scheduler


def start_scheduler() -> None:
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        logger.info("Starting scheduler")
        scheduler.start()


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        logger.info("Shutting down scheduler")
        _scheduler.shutdown(wait=True)
    _scheduler = None


def remove_job(job_id: str) -> bool:
    """Remove a job from the scheduler."""
    scheduler = get_scheduler()
    try:
        scheduler.remove_job(job_id)
        logger.info(f"Removed job {job_id}")
        return True
    except JobLookupError:
        logger.debug(f"Job {job_id} not found")
        return False


# ------------------------------------------------------------------
# Individual job setup helpers
# ------------------------------------------------------------------

def setup_alert_checks_job() -> str:
    """Schedule alert checks every ALERT_CHECK_INTERVAL_SECONDS."""
    from monitoring.config import config
    from monitoring.jobs.alert_checks import run_alert_checks

    scheduler = get_scheduler()
    job = scheduler.add_job(
        run_alert_checks,
        "interval",
        seconds=config.alert_check_interval_seconds,
        id=ALERT_CHECKS_JOB_ID,
        name="Alert Checks",
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info(
        f"Scheduled alert_checks: every {config.alert_check_interval_seconds}s, "
        f"job_id={job.id}"
    )
    return job.id


def setup_rollup_jobs() -> list[str]:
    """Schedule the hourly and daily statistics roll-ups."""
    from monitoring.config import config

    if not config.rollup_enabled:
        logger.info("Roll-up jobs not scheduled: ROLLUP_ENABLED=false")
        return []

    from monitoring.jobs.statistics_rollup import run_daily_rollup, run_hourly_rollup

    scheduler = get_scheduler()
    tz = config.stats_timezone or None

    hourly = scheduler.add_job(
        run_hourly_rollup,
        "cron",
        minute=5,
        timezone=tz,
        id=HOURLY_ROLLUP_JOB_ID,
        name="Statistics Roll-up (hourly)",
        replace_existing=True,
    )
    daily = scheduler.add_job(
        run_daily_rollup,
        "cron",
        hour=0,
        minute=15,
        timezone=tz,
        id=DAILY_ROLLUP_JOB_ID,
        name="Statistics Roll-up (daily)",
        replace_existing=True,
    )
    logger.info(f"Scheduled roll-ups: hourly at :05, daily at 00:15 tz={tz or 'local'}")
    return [hourly.id, daily.id]


def setup_retention_cleanup_job() -> str:
    """Schedule daily retention cleanup (03:30)."""
    from monitoring.config import config
    from monitoring.jobs.statistics_rollup import run_retention_cleanup

    scheduler = get_scheduler()
    tz = config.stats_timezone or None
    job = scheduler.add_job(
        run_retention_cleanup,
        "cron",
        hour=3,
        minute=30,
        timezone=tz,
        id=RETENTION_CLEANUP_JOB_ID,
        name="Retention Cleanup",
        replace_existing=True,
    )
    logger.info(f"Scheduled retention_cleanup: daily 03:30, job_id={job.id}")
    return job.id


# ------------------------------------------------------------------
# Aggregate setup
# ------------------------------------------------------------------

def setup_all_jobs() -> None:
    """Setup all scheduled jobs."""
    setup_alert_checks_job()
    setup_rollup_jobs()
    setup_retention_cleanup_job()
    logger.info("All jobs configured")
