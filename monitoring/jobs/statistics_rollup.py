"""Roll-up of live samples into the long-retention aggregate store.

Runs hourly (previous complete hour, HOUR buckets) and daily at 00:15
(previous complete day, DAY buckets). For every configured application,
plus the unlabelled all-applications series, every configured metric type
and every aggregation type, the window is fetched from Prometheus,
normalized and upserted into ``metric_statistics``. These rows are what
the blender serves once the live backend has dropped the samples.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monitoring.core.contracts import (
    AggregationType,
    LiveSource,
    MetricType,
    TimePeriod,
    parse_enum,
)
from monitoring.core.errors import InvalidArgument
from monitoring.core.normalizer import normalize, parse_timestamp, truncate_timestamp
from monitoring.logging import get_logger, log_context
from monitoring.storage.repo_alert_history import AlertHistoryRepo
from monitoring.storage.repo_statistics import StatisticsRepo

logger = get_logger(__name__)

PERIOD_WIDTHS: dict[TimePeriod, timedelta] = {
    TimePeriod.HOUR: timedelta(hours=1),
    TimePeriod.DAY: timedelta(days=1),
}


def previous_window(
    period: TimePeriod, now: datetime, tz: tzinfo | None = None
) -> tuple[datetime, datetime]:
    """Start and end of the last complete bucket before ``now`` in the calendar."""
    local_now = now.astimezone(tz)
    end = truncate_timestamp(local_now, period)
    return end - PERIOD_WIDTHS[period], end


def _bucket_start(timestamp: str, tz: tzinfo | None) -> datetime:
    local = parse_timestamp(timestamp)
    if tz is not None:
        return local.replace(tzinfo=tz)
    return local.astimezone()


def parse_metric_types(names: Iterable[str]) -> list[MetricType]:
    """Parse configured metric type names, dropping unknown ones."""
    metric_types = []
    for name in names:
        try:
            metric_types.append(parse_enum(MetricType, name, "metric type"))
        except InvalidArgument as e:
            logger.warning(f"Ignoring roll-up metric type: {e}")
    return metric_types


async def rollup_window(
    live_source: LiveSource,
    session_factory: async_sessionmaker[AsyncSession],
    applications: Iterable[str | None],
    metric_types: Iterable[MetricType],
    period: TimePeriod,
    start: datetime,
    end: datetime,
    tz: tzinfo | None = None,
) -> dict:
    """Roll one window up into the aggregate store.

    Returns:
        Summary dict with counts of stored buckets and failed combinations
    """
    stored = 0
    failed = 0
    metric_types = list(metric_types)

    for application in applications:
        for metric_type in metric_types:
            for aggregation in AggregationType:
                context = log_context(
                    application=application or "*",
                    metric=metric_type.value,
                    aggregation=aggregation.value,
                    period=period.value,
                )
                try:
                    samples = await live_source.fetch_samples(
                        metric_type, aggregation, period, start, end, application
                    )
                    points = normalize(samples, period, aggregation, tz)
                    async with session_factory() as session:
                        repo = StatisticsRepo(session)
                        for point in points:
                            bucket_start = _bucket_start(point.timestamp, tz)
                            if not start <= bucket_start < end:
                                continue
                            await repo.upsert(
                                metric_type=metric_type.value,
                                time_period=period.value,
                                aggregation_type=aggregation.value,
                                application=application,
                                start_time=bucket_start,
                                end_time=bucket_start + PERIOD_WIDTHS[period],
                                metric_value=point.value,
                                min_value=point.min_value,
                                max_value=point.max_value,
                                sample_count=point.sample_count,
                            )
                            stored += 1
                except Exception as e:
                    failed += 1
                    logger.warning(f"Roll-up failed: {e}", extra=context)

    logger.info(
        f"Roll-up of {period.value} window finished",
        extra=log_context(start=start.isoformat(), stored=stored, failed=failed),
    )
    return {"stored": stored, "failed": failed}


async def _run_rollup(period: TimePeriod) -> dict:
    from monitoring.config import config
    from monitoring.deps import get_live_source, get_stats_timezone
    from monitoring.storage import get_session_factory

    tz = get_stats_timezone()
    start, end = previous_window(period, datetime.now(timezone.utc), tz)
    applications: list[str | None] = [None, *config.rollup_applications]
    return await rollup_window(
        get_live_source(),
        get_session_factory(),
        applications,
        parse_metric_types(config.rollup_metric_types),
        period,
        start,
        end,
        tz,
    )


async def run_hourly_rollup() -> dict:
    """Roll the previous complete hour up into HOUR buckets."""
    return await _run_rollup(TimePeriod.HOUR)


async def run_daily_rollup() -> dict:
    """Roll the previous complete day up into DAY buckets."""
    return await _run_rollup(TimePeriod.DAY)


async def run_retention_cleanup() -> dict:
    """Delete alert history and statistics past their retention horizons.

    Returns:
        Summary dict with deleted row counts
    """
    from monitoring.config import config
    from monitoring.storage import get_session_factory

    session_factory = get_session_factory()
    async with session_factory() as session:
        history_deleted = await AlertHistoryRepo(session).delete_older_than(
            config.alert_history_retention_days
        )
    async with session_factory() as session:
        statistics_deleted = await StatisticsRepo(session).delete_older_than(
            config.statistics_retention_days
        )

    logger.info(
        f"Retention cleanup: {history_deleted} history rows, "
        f"{statistics_deleted} statistics rows deleted"
    )
    return {"history_deleted": history_deleted, "statistics_deleted": statistics_deleted}
