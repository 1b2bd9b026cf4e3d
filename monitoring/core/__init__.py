"""Core statistics blending and alert evaluation logic."""

from monitoring.core.blender import StatisticsBlender
from monitoring.core.contracts import (
    AggregationType,
    ConditionOperator,
    DataPoint,
    DataSource,
    MetricQuery,
    MetricType,
    NotificationMethod,
    RawSample,
    Severity,
    StatisticsResult,
    TimePeriod,
    TriggerEvent,
)
from monitoring.core.errors import (
    InvalidArgument,
    MonitoringError,
    NotFound,
    UpstreamUnavailable,
)
from monitoring.core.evaluator import AlertEvaluator, SustainedConditionTracker
from monitoring.core.normalizer import normalize

__all__ = [
    "AggregationType",
    "AlertEvaluator",
    "ConditionOperator",
    "DataPoint",
    "DataSource",
    "InvalidArgument",
    "MetricQuery",
    "MetricType",
    "MonitoringError",
    "NotFound",
    "NotificationMethod",
    "RawSample",
    "Severity",
    "StatisticsBlender",
    "StatisticsResult",
    "SustainedConditionTracker",
    "TimePeriod",
    "TriggerEvent",
    "UpstreamUnavailable",
    "normalize",
]
