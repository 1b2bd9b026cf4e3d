"""Tests for statistics roll-up and the aggregate source."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from monitoring.core.contracts import AggregationType, MetricType, RawSample, TimePeriod
from monitoring.jobs.statistics_rollup import (
    parse_metric_types,
    previous_window,
    rollup_window,
)
from monitoring.providers.metric_sources import AggregateMetricSource
from monitoring.storage import StatisticsRepo

UTC = ZoneInfo("UTC")
START = datetime(2026, 5, 1, 10, 0, tzinfo=UTC)
END = START + timedelta(hours=1)


def _samples(metric_type, aggregation, period, start, end, application=None):
    # one sample every 10 minutes, plus one past the window
    base = int(start.timestamp())
    return [RawSample(base + i * 600, float(10 + i)) for i in range(7)]


def _live(side_effect=_samples):
    live = MagicMock()
    live.fetch_samples = AsyncMock(side_effect=side_effect)
    return live


@pytest.mark.parametrize(
    "period,now,expected_start",
    [
        (TimePeriod.HOUR, datetime(2026, 5, 1, 11, 5, tzinfo=timezone.utc), datetime(2026, 5, 1, 10)),
        (TimePeriod.DAY, datetime(2026, 5, 2, 0, 15, tzinfo=timezone.utc), datetime(2026, 5, 1)),
    ],
)
def test_previous_window_is_last_complete_bucket(period, now, expected_start):
    start, end = previous_window(period, now, UTC)

    assert start.replace(tzinfo=None) == expected_start
    assert end > start
    assert end <= now


def test_previous_day_follows_the_stats_timezone():
    # 2026-05-01 16:00 UTC is already 2026-05-02 01:00 in Tokyo
    start, end = previous_window(
        TimePeriod.DAY, datetime(2026, 5, 1, 16, 0, tzinfo=timezone.utc), ZoneInfo("Asia/Tokyo")
    )

    assert start.replace(tzinfo=None) == datetime(2026, 5, 1)
    assert end.replace(tzinfo=None) == datetime(2026, 5, 2)


def test_parse_metric_types_drops_unknown_names():
    assert parse_metric_types(["tps", "DISK", "CPU_USAGE"]) == [
        MetricType.TPS,
        MetricType.CPU_USAGE,
    ]


@pytest.mark.anyio
async def test_rollup_stores_one_bucket_per_aggregation(session_factory, session):
    live = _live()

    summary = await rollup_window(
        live, session_factory, [None], [MetricType.TPS], TimePeriod.HOUR, START, END, UTC
    )

    assert summary == {"stored": len(AggregationType), "failed": 0}
    assert live.fetch_samples.await_count == len(AggregationType)

    repo = StatisticsRepo(session)
    avg = await repo.list_range("TPS", "HOUR", "AVG", START, END)
    assert len(avg) == 1
    assert avg[0].metric_value == pytest.approx(12.5)
    assert avg[0].sample_count == 6
    assert avg[0].min_value == 10.0
    assert avg[0].max_value == 15.0

    total = await repo.list_range("TPS", "HOUR", "SUM", START, END)
    assert total[0].metric_value == pytest.approx(75.0)


@pytest.mark.anyio
async def test_rerunning_a_window_does_not_duplicate_buckets(session_factory, session):
    live = _live()

    for _ in range(2):
        await rollup_window(
            live, session_factory, [None, "eng-study"], [MetricType.CPU_USAGE],
            TimePeriod.HOUR, START, END, UTC,
        )

    repo = StatisticsRepo(session)
    assert len(await repo.list_range("CPU_USAGE", "HOUR", "MAX", START, END)) == 1
    assert len(
        await repo.list_range("CPU_USAGE", "HOUR", "MAX", START, END, application="eng-study")
    ) == 1


@pytest.mark.anyio
async def test_failing_combination_is_counted_and_others_continue(session_factory):
    def side_effect(metric_type, aggregation, period, start, end, application=None):
        if aggregation == AggregationType.COUNT:
            raise RuntimeError("query timeout")
        return _samples(metric_type, aggregation, period, start, end, application)

    summary = await rollup_window(
        _live(side_effect), session_factory, [None], [MetricType.TPS],
        TimePeriod.HOUR, START, END, UTC,
    )

    assert summary == {"stored": len(AggregationType) - 1, "failed": 1}


@pytest.mark.anyio
async def test_aggregate_source_reads_rolled_up_buckets(session_factory):
    await rollup_window(
        _live(), session_factory, [None], [MetricType.TPS], TimePeriod.HOUR, START, END, UTC
    )
    source = AggregateMetricSource(session_factory, tz=UTC)

    points = await source.fetch_points(
        MetricType.TPS, TimePeriod.HOUR, AggregationType.AVG,
        START - timedelta(hours=2), END + timedelta(hours=2),
    )

    assert len(points) == 1
    assert points[0].timestamp == "2026-05-01 10:00:00"
    assert points[0].sample_count == 6
    assert points[0].value == pytest.approx(12.5)
