"""Metric source adapters for the statistics blender and alert evaluator."""

import asyncio
import math
from datetime import datetime, tzinfo
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monitoring.core.contracts import (
    AggregationType,
    DataPoint,
    MetricType,
    RawSample,
    TimePeriod,
)
from monitoring.core.normalizer import format_timestamp, to_local
from monitoring.logging import get_logger, log_context
from monitoring.providers.prometheus_client import PrometheusClient, PrometheusError
from monitoring.providers.promql import (
    build_range_query,
    build_snapshot_queries,
    calculate_step,
)
from monitoring.storage.db import ensure_utc
from monitoring.storage.repo_statistics import StatisticsRepo

logger = get_logger(__name__)


def _parse_value(raw: Any) -> float | None:
    """Parse a Prometheus sample value; NaN and infinities are dropped."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def series_to_samples(series: list[dict[str, Any]]) -> list[RawSample]:
    """Flatten matrix series into raw samples."""
    samples = []
    for entry in series:
        for pair in entry.get("values", []):
            if len(pair) < 2:
                continue
            value = _parse_value(pair[1])
            if value is None:
                continue
            samples.append(RawSample(timestamp_seconds=int(float(pair[0])), value=value))
    return samples


def first_value(vector: list[dict[str, Any]]) -> float | None:
    """First finite value of an instant vector, None when empty."""
    for entry in vector:
        pair = entry.get("value") or []
        if len(pair) >= 2:
            value = _parse_value(pair[1])
            if value is not None:
                return value
    return None


class LiveMetricSource:
    """Prometheus-backed live source."""

    def __init__(self, client: PrometheusClient) -> None:
        self.client = client

    async def fetch_samples(
        self,
        metric_type: MetricType,
        aggregation_type: AggregationType,
        time_period: TimePeriod,
        start: datetime,
        end: datetime,
        application: str | None = None,
    ) -> list[RawSample]:
        """Fetch raw samples for a window.

        Raises:
            PrometheusError: On query failure
        """
        step = calculate_step(time_period, start, end)
        query = build_range_query(metric_type, aggregation_type, step, application)
        logger.debug(
            f"Prometheus range query: {query}",
            extra=log_context(metric=metric_type.value, step=step),
        )
        series = await self.client.query_range(query, start, end, step)
        return series_to_samples(series)

    async def current_snapshot(self, application: str | None) -> dict[str, float]:
        """Current values keyed by snapshot name; unavailable metrics are absent.

        Raises:
            PrometheusError: If every snapshot query failed
        """
        queries = build_snapshot_queries(application)
        results = await asyncio.gather(
            *(self.client.query_instant(q) for q in queries.values()),
            return_exceptions=True,
        )

        snapshot: dict[str, float] = {}
        errors: list[Exception] = []
        for key, result in zip(queries, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors.append(result)
                logger.warning(
                    f"Snapshot query for {key} failed: {result}",
                    extra=log_context(application=application),
                )
                continue
            value = first_value(result)
            if value is not None:
                snapshot[key] = value

        if queries and len(errors) == len(queries):
            raise PrometheusError(f"Snapshot unavailable for {application}: {errors[0]}")
        return snapshot


class AggregateMetricSource:
    """Relational store of pre-rolled aggregates."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tz: tzinfo | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.tz = tz

    async def fetch_points(
        self,
        metric_type: MetricType,
        time_period: TimePeriod,
        aggregation_type: AggregationType,
        start: datetime,
        end: datetime,
        application: str | None = None,
    ) -> list[DataPoint]:
        async with self.session_factory() as session:
            rows = await StatisticsRepo(session).list_range(
                metric_type=metric_type.value,
                time_period=time_period.value,
                aggregation_type=aggregation_type.value,
                start=start,
                end=end,
                application=application,
            )

        return [
            DataPoint(
                timestamp=format_timestamp(to_local(ensure_utc(row.start_time), self.tz)),
                value=row.metric_value,
                min_value=row.min_value,
                max_value=row.max_value,
                sample_count=row.sample_count or 0,
            )
            for row in rows
        ]
