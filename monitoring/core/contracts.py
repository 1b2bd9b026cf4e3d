"""Domain contracts and type definitions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, TypeVar

from monitoring.core.errors import InvalidArgument


class MetricType(str, Enum):
    """Metrics that can be queried, charted and alerted on."""

    CPU_USAGE = "CPU_USAGE"
    HEAP_USAGE = "HEAP_USAGE"
    TPS = "TPS"
    ERROR_RATE = "ERROR_RATE"
    DB_CONNECTIONS = "DB_CONNECTIONS"
    DB_SIZE = "DB_SIZE"
    DB_TRANSACTIONS = "DB_TRANSACTIONS"
    ES_JVM_HEAP = "ES_JVM_HEAP"
    ES_DATA_SIZE = "ES_DATA_SIZE"
    ES_CPU = "ES_CPU"


class AggregationType(str, Enum):
    """Per-bucket aggregation functions."""

    AVG = "AVG"
    SUM = "SUM"
    MIN = "MIN"
    MAX = "MAX"
    COUNT = "COUNT"


class TimePeriod(str, Enum):
    """Bucket widths for normalization."""

    MINUTE = "MINUTE"
    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"


class DataSource(str, Enum):
    """Provenance tag of a blended series."""

    PROMETHEUS = "PROMETHEUS"
    POSTGRESQL = "POSTGRESQL"
    MIXED = "MIXED"


class ConditionOperator(str, Enum):
    """Comparison operators for alert rules."""

    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="


class Severity(str, Enum):
    """Alert severities, most severe first."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class NotificationMethod(str, Enum):
    """Notification channels an alert rule may request."""

    EMAIL = "EMAIL"
    SLACK = "SLACK"


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: "str | E", field_name: str) -> E:
    """Parse a raw value into an enum member.

    Matching is case-insensitive on the member value.

    Raises:
        InvalidArgument: If the value is not a member of the enum
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        for member in enum_cls:
            if member.value.upper() == candidate.upper():
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise InvalidArgument(f"Unknown {field_name}: {value!r} (expected one of {allowed})")


@dataclass(frozen=True)
class MetricQuery:
    """Request for one blended time series."""

    metric_type: MetricType
    aggregation_type: AggregationType
    time_period: TimePeriod
    start_time: datetime
    end_time: datetime
    application: str | None = None


@dataclass(frozen=True)
class RawSample:
    """One time-stamped sample produced by a metric source."""

    timestamp_seconds: int
    value: float


@dataclass
class DataPoint:
    """One normalized bucket of a blended series."""

    timestamp: str
    value: float
    min_value: float | None
    max_value: float | None
    sample_count: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp,
            "value": self.value,
            "minValue": self.min_value,
            "maxValue": self.max_value,
            "sampleCount": self.sample_count,
        }


@dataclass
class StatisticsResult:
    """Blended series with its provenance tag."""

    metric_type: MetricType
    time_period: TimePeriod
    aggregation_type: AggregationType
    data_source: DataSource
    data: list[DataPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "metricType": self.metric_type.value,
            "timePeriod": self.time_period.value,
            "aggregationType": self.aggregation_type.value,
            "dataSource": self.data_source.value,
            "data": [point.to_dict() for point in self.data],
        }


@dataclass(frozen=True)
class TriggerEvent:
    """A rule's condition currently holds."""

    current_value: float
    message: str


class LiveSource(Protocol):
    """High resolution, short retention metric source."""

    async def fetch_samples(
        self,
        metric_type: MetricType,
        aggregation_type: AggregationType,
        time_period: TimePeriod,
        start: datetime,
        end: datetime,
        application: str | None = None,
    ) -> list[RawSample]: ...

    async def current_snapshot(self, application: str | None) -> dict[str, float]: ...


class AggregateSource(Protocol):
    """Low resolution, long retention store of pre-bucketed aggregates."""

    async def fetch_points(
        self,
        metric_type: MetricType,
        time_period: TimePeriod,
        aggregation_type: AggregationType,
        start: datetime,
        end: datetime,
        application: str | None = None,
    ) -> list[DataPoint]: ...


class Notifier(Protocol):
    """External notification channel."""

    async def send(self, message: str) -> bool: ...
