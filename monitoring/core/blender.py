"""Statistics blending across the live and the long-retention metric sources.

The live backend keeps high resolution samples for a limited retention
window only; older ranges are served from pre-rolled aggregates. For each
query the blender splits the window at ``now - retention``, fetches both
sub-ranges concurrently and returns one ordered series::

    [start ........ cutoff) -> aggregate store (already bucketed)
    [cutoff ........ end]   -> live backend -> normalize()

A failing source degrades to an empty partial series and narrows the
provenance tag. Only when every consulted source fails does the call raise
UpstreamUnavailable.
"""

import asyncio
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

from monitoring.core.contracts import (
    AggregateSource,
    AggregationType,
    DataPoint,
    DataSource,
    LiveSource,
    MetricQuery,
    MetricType,
    StatisticsResult,
    TimePeriod,
    parse_enum,
)
from monitoring.core.errors import InvalidArgument, UpstreamUnavailable
from monitoring.core.normalizer import normalize, parse_timestamp
from monitoring.logging import get_logger, log_context

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_points(a: DataPoint, b: DataPoint, aggregation: AggregationType) -> DataPoint:
    """Combine two points describing the same bucket."""
    count = a.sample_count + b.sample_count
    if aggregation == AggregationType.AVG:
        if count > 0:
            value = (a.value * a.sample_count + b.value * b.sample_count) / count
        else:
            value = (a.value + b.value) / 2
    elif aggregation == AggregationType.MIN:
        value = min(a.value, b.value)
    elif aggregation == AggregationType.MAX:
        value = max(a.value, b.value)
    else:
        # SUM and COUNT are additive
        value = a.value + b.value

    mins = [v for v in (a.min_value, b.min_value) if v is not None]
    maxs = [v for v in (a.max_value, b.max_value) if v is not None]
    return DataPoint(
        timestamp=a.timestamp,
        value=value,
        min_value=min(mins) if mins else None,
        max_value=max(maxs) if maxs else None,
        sample_count=count,
    )


def merge_series(points: list[DataPoint], aggregation: AggregationType) -> list[DataPoint]:
    """Collapse duplicate buckets and order the series by bucket start."""
    by_timestamp: dict[str, DataPoint] = {}
    for point in points:
        existing = by_timestamp.get(point.timestamp)
        if existing is None:
            by_timestamp[point.timestamp] = point
        else:
            by_timestamp[point.timestamp] = merge_points(existing, point, aggregation)
    return sorted(by_timestamp.values(), key=lambda p: parse_timestamp(p.timestamp))


class StatisticsBlender:
    """Serves continuous time series over the retention seam."""

    def __init__(
        self,
        live_source: LiveSource,
        aggregate_source: AggregateSource,
        retention: timedelta,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the blender.

        Args:
            live_source: High resolution, short retention source
            aggregate_source: Pre-bucketed long retention store
            retention: Live source retention window
            tz: Calendar used for bucketing and for naive query bounds
            clock: Returns the current aware instant
        """
        self.live_source = live_source
        self.aggregate_source = aggregate_source
        self.retention = retention
        self.tz = tz
        self.clock = clock

    def cutoff(self) -> datetime:
        """Oldest instant still held by the live source."""
        return self.clock() - self.retention

    def _as_aware(self, dt: datetime) -> datetime:
        if dt.tzinfo is not None:
            return dt
        if self.tz is not None:
            return dt.replace(tzinfo=self.tz)
        return dt.astimezone()

    async def blend(self, query: MetricQuery) -> StatisticsResult:
        """Produce one continuous series for the query window.

        Raises:
            InvalidArgument: Bad bounds or unrecognized enum values
            UpstreamUnavailable: Every consulted source failed
        """
        metric_type = parse_enum(MetricType, query.metric_type, "metric type")
        aggregation = parse_enum(AggregationType, query.aggregation_type, "aggregation type")
        period = parse_enum(TimePeriod, query.time_period, "time period")

        start = self._as_aware(query.start_time)
        end = self._as_aware(query.end_time)
        if start >= end:
            raise InvalidArgument("startTime must be before endTime")

        cutoff = self.cutoff()
        fetches = {}
        if start < cutoff:
            fetches[DataSource.POSTGRESQL] = self._fetch_aggregates(
                metric_type, period, aggregation, start, min(end, cutoff), query.application
            )
        if end > cutoff:
            fetches[DataSource.PROMETHEUS] = self._fetch_live(
                metric_type, period, aggregation, max(start, cutoff), end, query.application
            )

        results = await asyncio.gather(*fetches.values(), return_exceptions=True)

        points: list[DataPoint] = []
        contributed: list[DataSource] = []
        failures: list[Exception] = []
        for source, result in zip(fetches, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures.append(result)
                logger.warning(
                    f"Source {source.value} failed, continuing without it: {result}",
                    extra=log_context(
                        metric=metric_type.value,
                        source=source.value,
                        application=query.application,
                    ),
                )
                continue
            contributed.append(source)
            points.extend(result)

        if fetches and not contributed:
            raise UpstreamUnavailable(
                f"All metric sources failed for {metric_type.value}", causes=failures
            )

        if len(contributed) == 2:
            data_source = DataSource.MIXED
        elif contributed:
            data_source = contributed[0]
        else:
            data_source = DataSource.PROMETHEUS

        series = merge_series(points, aggregation)
        logger.info(
            f"Blended {len(series)} points for {metric_type.value}",
            extra=log_context(
                source=data_source.value,
                period=period.value,
                aggregation=aggregation.value,
                degraded=bool(failures),
            ),
        )
        return StatisticsResult(
            metric_type=metric_type,
            time_period=period,
            aggregation_type=aggregation,
            data_source=data_source,
            data=series,
        )

    async def _fetch_aggregates(
        self,
        metric_type: MetricType,
        period: TimePeriod,
        aggregation: AggregationType,
        start: datetime,
        end: datetime,
        application: str | None,
    ) -> list[DataPoint]:
        return await self.aggregate_source.fetch_points(
            metric_type, period, aggregation, start, end, application
        )

    async def _fetch_live(
        self,
        metric_type: MetricType,
        period: TimePeriod,
        aggregation: AggregationType,
        start: datetime,
        end: datetime,
        application: str | None,
    ) -> list[DataPoint]:
        samples = await self.live_source.fetch_samples(
            metric_type, aggregation, period, start, end, application
        )
        return normalize(samples, period, aggregation, self.tz)
