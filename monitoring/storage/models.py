"""SQLAlchemy ORM models for alert rules, alert history and rolled-up statistics."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from monitoring.storage.db import Base


class AlertRule(Base):
    """Threshold rule evaluated by the alert scheduler."""

    __tablename__ = "alert_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    application: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    condition_operator: Mapped[str] = mapped_column(String(2), nullable=False)
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    # Comma-separated NotificationMethod values
    notification_methods: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    trigger_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    history: Mapped[list["AlertHistory"]] = relationship(
        "AlertHistory", back_populates="rule", passive_deletes=True
    )

    __table_args__ = (Index("ix_alert_rules_active_app", "is_active", "application"),)

    @property
    def methods(self) -> list[str]:
        return [m for m in (self.notification_methods or "").split(",") if m]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "application": self.application,
            "metricType": self.metric_type,
            "conditionOperator": self.condition_operator,
            "thresholdValue": self.threshold_value,
            "durationMinutes": self.duration_minutes,
            "severity": self.severity,
            "notificationMethods": self.methods,
            "isActive": self.is_active,
            "lastTriggeredAt": _iso(self.last_triggered_at),
            "triggerCount": self.trigger_count,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class AlertHistory(Base):
    """One firing of an alert rule."""

    __tablename__ = "alert_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_rule_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("alert_rules.id", ondelete="SET NULL"), nullable=True
    )
    rule_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    triggered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    rule: Mapped[Optional["AlertRule"]] = relationship("AlertRule", back_populates="history")

    __table_args__ = (
        Index("ix_alert_history_rule_triggered", "alert_rule_id", "triggered_at"),
        Index("ix_alert_history_resolved", "is_resolved"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "alertRuleId": self.alert_rule_id,
            "ruleName": self.rule_name,
            "triggeredAt": _iso(self.triggered_at),
            "currentValue": self.current_value,
            "thresholdValue": self.threshold_value,
            "message": self.message,
            "severity": self.severity,
            "resolved": self.is_resolved,
            "resolvedAt": _iso(self.resolved_at),
            "resolvedMessage": self.resolved_message,
            "durationMinutes": self.duration_minutes,
            "notificationSent": self.notification_sent,
            "notificationResult": self.notification_result,
        }


class MetricStatistic(Base):
    """Pre-aggregated bucket written by the roll-up job."""

    __tablename__ = "metric_statistics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    time_period: Mapped[str] = mapped_column(String(20), nullable=False)
    aggregation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Empty string when the bucket spans all applications
    application: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    metric_value: Mapped[float] = mapped_column(Float, nullable=False)
    min_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "metric_type",
            "time_period",
            "aggregation_type",
            "application",
            "start_time",
            name="uq_metric_statistics_bucket",
        ),
        Index("ix_metric_statistics_lookup", "metric_type", "time_period", "start_time"),
    )


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None
