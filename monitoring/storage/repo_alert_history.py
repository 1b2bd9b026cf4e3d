"""Repository for alert history operations."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from monitoring.core.errors import InvalidArgument, NotFound
from monitoring.storage.db import ensure_utc, to_utc
from monitoring.storage.models import AlertHistory

MAX_PAGE_SIZE = 200


def _check_page(page: int, size: int) -> None:
    if page < 0:
        raise InvalidArgument("page must be >= 0")
    if size < 1 or size > MAX_PAGE_SIZE:
        raise InvalidArgument(f"size must be between 1 and {MAX_PAGE_SIZE}")


class AlertHistoryRepo:
    """Repository for alert firings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, history: AlertHistory) -> AlertHistory:
        """Persist one history record in its own transaction.

        Returns:
            The stored AlertHistory with its ID assigned
        """
        history.triggered_at = to_utc(history.triggered_at)
        self.session.add(history)
        await self.session.commit()
        await self.session.refresh(history)
        return history

    async def get(self, history_id: int) -> AlertHistory | None:
        """Get a history record by ID."""
        stmt = select(AlertHistory).where(AlertHistory.id == history_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve(
        self,
        history_id: int,
        message: str | None = None,
        resolved_at: datetime | None = None,
    ) -> bool:
        """Mark a history record as resolved.

        Sets resolved_at and duration_minutes (whole minutes since triggering).

        Returns:
            True if resolved now, False if it was already resolved

        Raises:
            NotFound: If no such record exists
        """
        history = await self.get(history_id)
        if history is None:
            raise NotFound(f"Alert history not found: {history_id}")
        if history.is_resolved:
            return False

        if resolved_at is None:
            resolved_at = datetime.now(timezone.utc)
        resolved_at = to_utc(resolved_at)

        elapsed = resolved_at - ensure_utc(history.triggered_at)
        history.is_resolved = True
        history.resolved_at = resolved_at
        history.resolved_message = message
        history.duration_minutes = max(0, int(elapsed.total_seconds() // 60))
        await self.session.commit()
        return True

    async def list_recent(self, page: int = 0, size: int = 20) -> list[AlertHistory]:
        """List history newest first, one page at a time (page is zero-based)."""
        _check_page(page, size)
        stmt = (
            select(AlertHistory)
            .order_by(AlertHistory.triggered_at.desc(), AlertHistory.id.desc())
            .offset(page * size)
            .limit(size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(AlertHistory))
        return int(result.scalar_one())

    async def list_by_rule(
        self, rule_id: int, page: int = 0, size: int = 20
    ) -> list[AlertHistory]:
        """List history of one rule, newest first."""
        _check_page(page, size)
        stmt = (
            select(AlertHistory)
            .where(AlertHistory.alert_rule_id == rule_id)
            .order_by(AlertHistory.triggered_at.desc(), AlertHistory.id.desc())
            .offset(page * size)
            .limit(size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_unresolved(self) -> list[AlertHistory]:
        """List every unresolved record, newest first."""
        stmt = (
            select(AlertHistory)
            .where(AlertHistory.is_resolved.is_(False))
            .order_by(AlertHistory.triggered_at.desc(), AlertHistory.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        """Delete records triggered more than ``days`` days ago.

        Returns:
            Number of deleted records
        """
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = to_utc(now) - timedelta(days=days)
        stmt = delete(AlertHistory).where(AlertHistory.triggered_at < cutoff)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount or 0
