"""Storage module for database operations."""

from monitoring.storage.db import (
    Base,
    close_engine,
    create_tables,
    ensure_utc,
    get_engine,
    get_session_factory,
)
from monitoring.storage.models import AlertHistory, AlertRule, MetricStatistic
from monitoring.storage.repo_alert_history import AlertHistoryRepo
from monitoring.storage.repo_alert_rules import AlertRulesRepo
from monitoring.storage.repo_statistics import StatisticsRepo

__all__ = [
    # Database
    "Base",
    "get_engine",
    "get_session_factory",
    "create_tables",
    "close_engine",
    "ensure_utc",
    # Models
    "AlertRule",
    "AlertHistory",
    "MetricStatistic",
    # Repositories
    "AlertRulesRepo",
    "AlertHistoryRepo",
    "StatisticsRepo",
]
