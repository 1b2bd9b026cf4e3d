"""Jobs module for scheduled tasks and background processing."""

from monitoring.jobs.alert_checks import AlertScheduler, CheckStats, run_alert_checks
from monitoring.jobs.scheduler import (
    get_scheduler,
    remove_job,
    setup_alert_checks_job,
    setup_all_jobs,
    setup_retention_cleanup_job,
    setup_rollup_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from monitoring.jobs.statistics_rollup import (
    rollup_window,
    run_daily_rollup,
    run_hourly_rollup,
    run_retention_cleanup,
)

__all__ = [
    "AlertScheduler",
    "CheckStats",
    "get_scheduler",
    "remove_job",
    "rollup_window",
    "run_alert_checks",
    "run_daily_rollup",
    "run_hourly_rollup",
    "run_retention_cleanup",
    "setup_alert_checks_job",
    "setup_all_jobs",
    "setup_retention_cleanup_job",
    "setup_rollup_jobs",
    "shutdown_scheduler",
    "start_scheduler",
]
