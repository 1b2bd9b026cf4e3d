"""Repository for rolled-up metric statistics."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from monitoring.storage.db import to_utc
from monitoring.storage.models import MetricStatistic


class StatisticsRepo:
    """Repository for the long-retention aggregate store."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        metric_type: str,
        time_period: str,
        aggregation_type: str,
        application: str | None,
        start_time: datetime,
        end_time: datetime,
        metric_value: float,
        min_value: float | None,
        max_value: float | None,
        sample_count: int,
    ) -> MetricStatistic:
        """Insert or update one bucket.

        Returns:
            MetricStatistic instance
        """
        start_time = to_utc(start_time)
        end_time = to_utc(end_time)
        application = application or ""

        stmt = select(MetricStatistic).where(
            MetricStatistic.metric_type == metric_type,
            MetricStatistic.time_period == time_period,
            MetricStatistic.aggregation_type == aggregation_type,
            MetricStatistic.application == application,
            MetricStatistic.start_time == start_time,
        )
        result = await self.session.execute(stmt)
        existing = result.scalar_one_or_none()

        if existing:
            existing.end_time = end_time
            existing.metric_value = metric_value
            existing.min_value = min_value
            existing.max_value = max_value
            existing.sample_count = sample_count
            await self.session.commit()
            await self.session.refresh(existing)
            return existing

        statistic = MetricStatistic(
            metric_type=metric_type,
            time_period=time_period,
            aggregation_type=aggregation_type,
            application=application,
            start_time=start_time,
            end_time=end_time,
            metric_value=metric_value,
            min_value=min_value,
            max_value=max_value,
            sample_count=sample_count,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(statistic)
        await self.session.commit()
        await self.session.refresh(statistic)
        return statistic

    async def list_range(
        self,
        metric_type: str,
        time_period: str,
        aggregation_type: str,
        start: datetime,
        end: datetime,
        application: str | None = None,
    ) -> list[MetricStatistic]:
        """List buckets starting within [start, end), oldest first.

        Without an application label only buckets spanning all applications
        are returned.
        """
        stmt = (
            select(MetricStatistic)
            .where(
                MetricStatistic.metric_type == metric_type,
                MetricStatistic.time_period == time_period,
                MetricStatistic.aggregation_type == aggregation_type,
                MetricStatistic.application == (application or ""),
                MetricStatistic.start_time >= to_utc(start),
                MetricStatistic.start_time < to_utc(end),
            )
            .order_by(MetricStatistic.start_time)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        """Delete buckets that started more than ``days`` days ago.

        Returns:
            Number of deleted buckets
        """
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = to_utc(now) - timedelta(days=days)
        stmt = delete(MetricStatistic).where(MetricStatistic.start_time < cutoff)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount or 0
