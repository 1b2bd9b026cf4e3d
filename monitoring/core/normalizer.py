"""Time series normalization.

Raw samples are bucketed to the calendar boundary of the requested period
(minute, hour, day, ISO week start, first of month) in one formatting
timezone, then aggregated per bucket::

    points = normalize(samples, TimePeriod.HOUR, AggregationType.AVG)

Every output bucket carries min/max of the raw values and a sample count,
whatever aggregation was requested.
"""

from collections import defaultdict
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from monitoring.core.contracts import AggregationType, DataPoint, RawSample, TimePeriod
from monitoring.core.errors import InvalidArgument

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


AGGREGATORS: dict[AggregationType, Callable[[list[float]], float]] = {
    AggregationType.AVG: lambda values: sum(values) / len(values),
    AggregationType.SUM: lambda values: float(sum(values)),
    AggregationType.MIN: lambda values: float(min(values)),
    AggregationType.MAX: lambda values: float(max(values)),
    AggregationType.COUNT: lambda values: float(len(values)),
}


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve a zone name; empty or None means the system local calendar.

    Raises:
        InvalidArgument: If the zone name is unknown
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidArgument(f"Unknown timezone: {name!r}")


def to_local(dt: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert an instant to the formatting calendar (naive input is taken as-is)."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz)


def truncate_timestamp(dt: datetime, period: TimePeriod) -> datetime:
    """Truncate a calendar datetime to the start of its bucket."""
    if period == TimePeriod.MINUTE:
        return dt.replace(second=0, microsecond=0)
    if period == TimePeriod.HOUR:
        return dt.replace(minute=0, second=0, microsecond=0)
    if period == TimePeriod.DAY:
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == TimePeriod.WEEK:
        day = dt.replace(hour=0, minute=0, second=0, microsecond=0)
        return day - timedelta(days=day.weekday())
    if period == TimePeriod.MONTH:
        return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    raise InvalidArgument(f"Unknown time period: {period!r}")


def format_timestamp(dt: datetime) -> str:
    """Render a bucket start in display format."""
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a display-format timestamp back into an orderable datetime.

    Raises:
        InvalidArgument: If the string is not in ``YYYY-MM-DD HH:MM:SS`` form
    """
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid timestamp {value!r}, expected YYYY-MM-DD HH:MM:SS")


def normalize(
    samples: Iterable[RawSample],
    period: TimePeriod,
    aggregation: AggregationType,
    tz: tzinfo | None = None,
) -> list[DataPoint]:
    """Bucket raw samples and aggregate each bucket.

    Args:
        samples: Raw samples in any order
        period: Bucket width
        aggregation: Aggregation applied to each bucket's values
        tz: Calendar used for truncation and formatting (None = system local)

    Returns:
        DataPoints ordered ascending by bucket start

    Raises:
        InvalidArgument: If the aggregation or period is not recognized
    """
    aggregator = AGGREGATORS.get(aggregation)
    if aggregator is None:
        raise InvalidArgument(f"Unknown aggregation type: {aggregation!r}")

    buckets: dict[datetime, list[float]] = defaultdict(list)
    for sample in samples:
        local = datetime.fromtimestamp(sample.timestamp_seconds, tz)
        buckets[truncate_timestamp(local, period)].append(sample.value)

    points = []
    for bucket_start in sorted(buckets):
        values = buckets[bucket_start]
        points.append(
            DataPoint(
                timestamp=format_timestamp(bucket_start),
                value=aggregator(values),
                min_value=float(min(values)),
                max_value=float(max(values)),
                sample_count=len(values),
            )
        )
    return points
