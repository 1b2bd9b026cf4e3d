"""Tests for time series normalization."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from monitoring.core.contracts import AggregationType, RawSample, TimePeriod
from monitoring.core.errors import InvalidArgument
from monitoring.core.normalizer import (
    normalize,
    parse_timestamp,
    resolve_timezone,
    truncate_timestamp,
)

UTC = ZoneInfo("UTC")


def _ts(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


def test_empty_input_gives_empty_output():
    assert normalize([], TimePeriod.HOUR, AggregationType.AVG, UTC) == []


def test_two_samples_in_same_hour_share_one_bucket():
    samples = [
        RawSample(_ts(2026, 3, 4, 10, 5), 20.0),
        RawSample(_ts(2026, 3, 4, 10, 55), 40.0),
    ]

    points = normalize(samples, TimePeriod.HOUR, AggregationType.AVG, UTC)

    assert len(points) == 1
    point = points[0]
    assert point.timestamp == "2026-03-04 10:00:00"
    assert point.sample_count == 2
    assert point.value == 30.0
    assert point.min_value == 20.0
    assert point.max_value == 40.0


def test_single_sample_bucket_has_equal_min_and_max():
    points = normalize(
        [RawSample(_ts(2026, 3, 4, 10, 5), 7.5)], TimePeriod.MINUTE, AggregationType.SUM, UTC
    )

    assert points[0].min_value == points[0].max_value == 7.5
    assert points[0].timestamp == "2026-03-04 10:05:00"


@pytest.mark.parametrize("period", list(TimePeriod))
def test_sample_count_is_preserved(period):
    samples = [
        RawSample(_ts(2026, 1, 1) + i * 1800, float(i))
        for i in range(0, 500, 7)
    ]

    points = normalize(samples, period, AggregationType.MAX, UTC)

    assert sum(p.sample_count for p in points) == len(samples)


def test_output_is_sorted_when_input_is_not():
    samples = [
        RawSample(_ts(2026, 3, 4, 12), 3.0),
        RawSample(_ts(2026, 3, 4, 10), 1.0),
        RawSample(_ts(2026, 3, 4, 11), 2.0),
    ]

    points = normalize(samples, TimePeriod.HOUR, AggregationType.AVG, UTC)

    assert [p.value for p in points] == [1.0, 2.0, 3.0]
    stamps = [parse_timestamp(p.timestamp) for p in points]
    assert stamps == sorted(stamps)


@pytest.mark.parametrize(
    "aggregation,expected",
    [
        (AggregationType.AVG, 2.0),
        (AggregationType.SUM, 6.0),
        (AggregationType.MIN, 1.0),
        (AggregationType.MAX, 3.0),
        (AggregationType.COUNT, 3.0),
    ],
)
def test_aggregations(aggregation, expected):
    samples = [RawSample(_ts(2026, 3, 4, 10, m), v) for m, v in ((1, 1.0), (2, 2.0), (3, 3.0))]

    points = normalize(samples, TimePeriod.HOUR, aggregation, UTC)

    assert points[0].value == expected


def test_unknown_aggregation_is_rejected():
    samples = [RawSample(_ts(2026, 3, 4, 10), 1.0)]

    with pytest.raises(InvalidArgument):
        normalize(samples, TimePeriod.HOUR, "MEDIAN", UTC)


def test_week_truncates_to_monday():
    # 2026-03-05 is a Thursday
    truncated = truncate_timestamp(datetime(2026, 3, 5, 17, 30), TimePeriod.WEEK)

    assert truncated == datetime(2026, 3, 2)
    assert truncated.weekday() == 0


def test_month_truncates_to_first_day():
    truncated = truncate_timestamp(datetime(2026, 3, 25, 8, 1, 2), TimePeriod.MONTH)

    assert truncated == datetime(2026, 3, 1)


def test_buckets_follow_the_formatting_timezone():
    # 23:30 UTC is already the next morning in Tokyo
    samples = [RawSample(_ts(2026, 1, 10, 23, 30), 1.0)]

    utc_points = normalize(samples, TimePeriod.DAY, AggregationType.AVG, UTC)
    tokyo_points = normalize(samples, TimePeriod.DAY, AggregationType.AVG, ZoneInfo("Asia/Tokyo"))

    assert utc_points[0].timestamp == "2026-01-10 00:00:00"
    assert tokyo_points[0].timestamp == "2026-01-11 00:00:00"


def test_parse_timestamp_rejects_other_formats():
    with pytest.raises(InvalidArgument):
        parse_timestamp("2026-03-04T10:00:00Z")


def test_resolve_timezone():
    assert resolve_timezone("") is None
    assert resolve_timezone("UTC") == UTC
    with pytest.raises(InvalidArgument):
        resolve_timezone("Mars/Olympus_Mons")
