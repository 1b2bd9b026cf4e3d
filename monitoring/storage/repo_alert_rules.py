"""Repository for alert rule operations."""

import math
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from monitoring.core.contracts import (
    ConditionOperator,
    MetricType,
    NotificationMethod,
    Severity,
    parse_enum,
)
from monitoring.core.errors import InvalidArgument, NotFound
from monitoring.core.evaluator import determine_severity
from monitoring.storage.db import to_utc
from monitoring.storage.models import AlertHistory, AlertRule

UPDATABLE_FIELDS = {
    "name",
    "description",
    "application",
    "metric_type",
    "condition_operator",
    "threshold_value",
    "duration_minutes",
    "severity",
    "notification_methods",
    "is_active",
}


def _clean_name(name: str | None) -> str:
    if not name or not name.strip():
        raise InvalidArgument("Rule name is required")
    return name.strip()


def _clean_threshold(value: Any) -> float:
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Threshold must be a number, got: {value!r}")
    if not math.isfinite(threshold):
        raise InvalidArgument("Threshold must be finite")
    return threshold


def _clean_duration(value: Any) -> int:
    if value is None:
        return 0
    try:
        duration = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Duration must be an integer, got: {value!r}")
    if duration < 0:
        raise InvalidArgument("Duration must not be negative")
    return duration


def _clean_methods(methods: Iterable[str | NotificationMethod] | str | None) -> str:
    if methods is None:
        return ""
    if isinstance(methods, str):
        methods = [m for m in methods.split(",") if m.strip()]
    parsed: list[str] = []
    for raw in methods:
        value = parse_enum(NotificationMethod, raw, "notification method").value
        if value not in parsed:
            parsed.append(value)
    return ",".join(parsed)


def _clean_application(application: str | None) -> str | None:
    if application is None or not application.strip():
        return None
    return application.strip()


class AlertRulesRepo:
    """Repository for alert rule definitions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        stmt = select(AlertRule.id).where(AlertRule.name == name)
        if exclude_id is not None:
            stmt = stmt.where(AlertRule.id != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def _commit_unique(self, name: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise InvalidArgument(f"Alert rule name already exists: {name}")

    async def create_rule(
        self,
        name: str,
        metric_type: str | MetricType,
        condition_operator: str | ConditionOperator,
        threshold_value: float,
        application: str | None = None,
        duration_minutes: int | None = 0,
        severity: str | Severity | None = None,
        notification_methods: Iterable[str] | str | None = None,
        description: str | None = None,
        is_active: bool = True,
    ) -> AlertRule:
        """Create a new alert rule.

        Severity is derived from metric type and threshold when not given.

        Returns:
            Created AlertRule instance

        Raises:
            InvalidArgument: Duplicate name or invalid field value
        """
        name = _clean_name(name)
        metric = parse_enum(MetricType, metric_type, "metric type")
        op = parse_enum(ConditionOperator, condition_operator, "condition operator")
        threshold = _clean_threshold(threshold_value)
        if severity:
            level = parse_enum(Severity, severity, "severity")
        else:
            level = determine_severity(metric, threshold)

        if await self._name_taken(name):
            raise InvalidArgument(f"Alert rule name already exists: {name}")

        now = datetime.now(timezone.utc)
        rule = AlertRule(
            name=name,
            description=description,
            application=_clean_application(application),
            metric_type=metric.value,
            condition_operator=op.value,
            threshold_value=threshold,
            duration_minutes=_clean_duration(duration_minutes),
            severity=level.value,
            notification_methods=_clean_methods(notification_methods),
            is_active=is_active,
            trigger_count=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(rule)
        await self._commit_unique(name)
        await self.session.refresh(rule)
        return rule

    async def get_rule(self, rule_id: int) -> AlertRule | None:
        """Get a rule by ID."""
        stmt = select(AlertRule).where(AlertRule.id == rule_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_rule(self, rule_id: int) -> AlertRule:
        """Get a rule by ID.

        Raises:
            NotFound: If no such rule exists
        """
        rule = await self.get_rule(rule_id)
        if rule is None:
            raise NotFound(f"Alert rule not found: {rule_id}")
        return rule

    async def update_rule(self, rule_id: int, **fields: Any) -> AlertRule:
        """Update fields of a rule.

        Args:
            rule_id: Rule ID
            **fields: Subset of UPDATABLE_FIELDS; None values are ignored

        Returns:
            Updated AlertRule instance

        Raises:
            NotFound: If no such rule exists
            InvalidArgument: Duplicate name or invalid field value
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidArgument(f"Unknown rule fields: {', '.join(sorted(unknown))}")
        fields = {k: v for k, v in fields.items() if v is not None}

        rule = await self.require_rule(rule_id)

        if "name" in fields:
            name = _clean_name(fields["name"])
            if name != rule.name and await self._name_taken(name, exclude_id=rule.id):
                raise InvalidArgument(f"Alert rule name already exists: {name}")
            rule.name = name
        if "description" in fields:
            rule.description = fields["description"]
        if "application" in fields:
            rule.application = _clean_application(fields["application"])
        if "metric_type" in fields:
            rule.metric_type = parse_enum(MetricType, fields["metric_type"], "metric type").value
        if "condition_operator" in fields:
            rule.condition_operator = parse_enum(
                ConditionOperator, fields["condition_operator"], "condition operator"
            ).value
        if "threshold_value" in fields:
            rule.threshold_value = _clean_threshold(fields["threshold_value"])
        if "duration_minutes" in fields:
            rule.duration_minutes = _clean_duration(fields["duration_minutes"])
        if "notification_methods" in fields:
            rule.notification_methods = _clean_methods(fields["notification_methods"])
        if "is_active" in fields:
            rule.is_active = bool(fields["is_active"])

        if "severity" in fields:
            rule.severity = parse_enum(Severity, fields["severity"], "severity").value
        elif "metric_type" in fields or "threshold_value" in fields:
            rule.severity = determine_severity(rule.metric_type, rule.threshold_value).value

        rule.updated_at = datetime.now(timezone.utc)
        await self._commit_unique(rule.name)
        await self.session.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        """Delete a rule; its history rows are kept with alert_rule_id cleared.

        Raises:
            NotFound: If no such rule exists
        """
        rule = await self.require_rule(rule_id)
        await self.session.execute(
            update(AlertHistory)
            .where(AlertHistory.alert_rule_id == rule_id)
            .values(alert_rule_id=None)
        )
        await self.session.delete(rule)
        await self.session.commit()

    async def list_all(self) -> list[AlertRule]:
        """List every rule, newest first."""
        stmt = select(AlertRule).order_by(AlertRule.created_at.desc(), AlertRule.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self) -> list[AlertRule]:
        """List active rules in creation order."""
        stmt = select(AlertRule).where(AlertRule.is_active.is_(True)).order_by(AlertRule.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_application(self, application: str) -> list[AlertRule]:
        """List rules for one application label."""
        stmt = (
            select(AlertRule)
            .where(AlertRule.application == application.strip())
            .order_by(AlertRule.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def toggle(self, rule_id: int) -> AlertRule:
        """Flip the active flag of a rule.

        Raises:
            NotFound: If no such rule exists
        """
        rule = await self.require_rule(rule_id)
        rule.is_active = not rule.is_active
        rule.updated_at = datetime.now(timezone.utc)
        await self.session.commit()
        await self.session.refresh(rule)
        return rule

    async def mark_triggered(self, rule_id: int, triggered_at: datetime | None = None) -> bool:
        """Record a firing on the rule.

        Returns:
            True if updated, False if the rule no longer exists
        """
        if triggered_at is None:
            triggered_at = datetime.now(timezone.utc)

        stmt = (
            update(AlertRule)
            .where(AlertRule.id == rule_id)
            .values(
                last_triggered_at=to_utc(triggered_at),
                trigger_count=AlertRule.trigger_count + 1,
            )
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0
