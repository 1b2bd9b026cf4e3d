"""Alert rule evaluation against the current metric snapshot."""

import operator
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from monitoring.core.contracts import (
    ConditionOperator,
    LiveSource,
    MetricType,
    Severity,
    TriggerEvent,
    parse_enum,
)
from monitoring.core.errors import InvalidArgument
from monitoring.logging import get_logger, log_context

logger = get_logger(__name__)


# Metric type -> key in the live snapshot; types without a key are never evaluated
METRIC_SNAPSHOT_KEYS: dict[MetricType, str] = {
    MetricType.CPU_USAGE: "cpu_usage",
    MetricType.HEAP_USAGE: "heap_usage",
    MetricType.TPS: "tps",
    MetricType.ERROR_RATE: "error_rate",
}

METRIC_UNITS: dict[MetricType, str] = {
    MetricType.CPU_USAGE: "%",
    MetricType.HEAP_USAGE: "%",
    MetricType.TPS: " req/s",
    MetricType.ERROR_RATE: "%",
    MetricType.DB_CONNECTIONS: "",
    MetricType.DB_SIZE: " MB",
    MetricType.DB_TRANSACTIONS: " tx/s",
    MetricType.ES_JVM_HEAP: "%",
    MetricType.ES_DATA_SIZE: " bytes",
    MetricType.ES_CPU: "%",
}

OPERATORS: dict[ConditionOperator, Callable[[Decimal, Decimal], bool]] = {
    ConditionOperator.GT: operator.gt,
    ConditionOperator.GTE: operator.ge,
    ConditionOperator.LT: operator.lt,
    ConditionOperator.LTE: operator.le,
    ConditionOperator.EQ: operator.eq,
}

# Severity bands, highest first; a threshold at or above the band bound gets its severity
SEVERITY_BANDS: dict[MetricType, list[tuple[float, Severity]]] = {
    MetricType.CPU_USAGE: [(90, Severity.CRITICAL), (80, Severity.ERROR), (70, Severity.WARNING)],
    MetricType.HEAP_USAGE: [(90, Severity.CRITICAL), (80, Severity.ERROR), (70, Severity.WARNING)],
    MetricType.ERROR_RATE: [(10, Severity.CRITICAL), (5, Severity.ERROR), (1, Severity.WARNING)],
    MetricType.DB_CONNECTIONS: [
        (100, Severity.CRITICAL),
        (80, Severity.ERROR),
        (50, Severity.WARNING),
    ],
    MetricType.DB_SIZE: [
        (10000, Severity.CRITICAL),
        (5000, Severity.ERROR),
        (1000, Severity.WARNING),
    ],
}

FIXED_SEVERITIES: dict[MetricType, Severity] = {
    MetricType.TPS: Severity.WARNING,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric value to Decimal through its shortest decimal repr."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"Not a number: {value!r}")


def condition_holds(current: Any, op: ConditionOperator, threshold: Any) -> bool:
    """Compare with decimal semantics on the shortest repr, so 80.0 > 80 is False."""
    return OPERATORS[op](to_decimal(current), to_decimal(threshold))


def determine_severity(metric_type: MetricType | str, threshold: float) -> Severity:
    """Derive a default severity from metric type and threshold."""
    try:
        metric = parse_enum(MetricType, metric_type, "metric type")
    except InvalidArgument:
        return Severity.INFO

    if metric in FIXED_SEVERITIES:
        return FIXED_SEVERITIES[metric]

    for bound, severity in SEVERITY_BANDS.get(metric, []):
        if threshold >= bound:
            return severity
    return Severity.INFO


def format_alert_message(
    rule_name: str, metric_type: MetricType, current: float, threshold: float
) -> str:
    unit = METRIC_UNITS.get(metric_type, "")
    return (
        f"[ALERT] {rule_name}\n"
        f"- current: {current:.2f}{unit}\n"
        f"- threshold: {threshold:.2f}{unit}"
    )


class SustainedConditionTracker:
    """Remembers since when each rule's condition has held without interruption.

    Continuity breaks on a false or failed observation, when the rule itself
    changed (``version``), or when no observation arrived within ``max_gap``.
    """

    def __init__(self, max_gap: timedelta | None = None) -> None:
        self.max_gap = max_gap
        self._true_since: dict[int, datetime] = {}
        self._last_seen: dict[int, datetime] = {}
        self._versions: dict[int, Any] = {}

    def reset(self, rule_id: int) -> None:
        self._true_since.pop(rule_id, None)
        self._last_seen.pop(rule_id, None)
        self._versions.pop(rule_id, None)

    def retain(self, rule_ids: Iterable[int]) -> None:
        """Forget every rule not in ``rule_ids``."""
        keep = set(rule_ids)
        for rule_id in [r for r in self._true_since if r not in keep]:
            self.reset(rule_id)

    def true_since(self, rule_id: int) -> datetime | None:
        return self._true_since.get(rule_id)

    def _continuous(self, rule_id: int, now: datetime, version: Any) -> bool:
        if rule_id not in self._true_since:
            return False
        if self._versions.get(rule_id) != version:
            return False
        last = self._last_seen.get(rule_id)
        if self.max_gap is not None and last is not None and now - last > self.max_gap:
            return False
        return True

    def observe_true(
        self,
        rule_id: int,
        now: datetime,
        duration_minutes: int | None,
        version: Any = None,
    ) -> bool:
        """Record a true observation.

        Returns:
            True once the condition has held for at least duration_minutes
        """
        if not self._continuous(rule_id, now, version):
            self._true_since[rule_id] = now
        self._last_seen[rule_id] = now
        self._versions[rule_id] = version
        if not duration_minutes or duration_minutes <= 0:
            return True
        return now - self._true_since[rule_id] >= timedelta(minutes=duration_minutes)


class AlertEvaluator:
    """Decides whether one alert rule currently fires."""

    def __init__(
        self,
        live_source: LiveSource,
        tracker: SustainedConditionTracker | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.live_source = live_source
        self.tracker = tracker or SustainedConditionTracker()
        self.clock = clock

    def retain(self, rule_ids: Iterable[int]) -> None:
        """Drop continuity state of rules that are no longer evaluated."""
        self.tracker.retain(rule_ids)

    async def evaluate(self, rule) -> TriggerEvent | None:
        """Evaluate one rule against the application's current snapshot.

        Args:
            rule: AlertRule with metric_type, condition_operator, threshold_value,
                duration_minutes, application, name and id

        Returns:
            TriggerEvent if the condition holds (for long enough), None otherwise

        Raises:
            InvalidArgument: Unknown metric type or operator on the rule
        """
        metric_type = parse_enum(MetricType, rule.metric_type, "metric type")
        op = parse_enum(ConditionOperator, rule.condition_operator, "condition operator")

        key = METRIC_SNAPSHOT_KEYS.get(metric_type)
        if key is None:
            logger.debug(
                f"No live snapshot key for {metric_type.value}, skipping rule",
                extra=log_context(rule_id=rule.id),
            )
            self.tracker.reset(rule.id)
            return None

        try:
            snapshot = await self.live_source.current_snapshot(rule.application)
        except BaseException:
            # includes cancellation by the caller timeout
            self.tracker.reset(rule.id)
            raise

        current = snapshot.get(key)
        if current is None:
            logger.debug(
                f"Metric {key} not available yet, skipping rule",
                extra=log_context(rule_id=rule.id, application=rule.application),
            )
            self.tracker.reset(rule.id)
            return None

        if not condition_holds(current, op, rule.threshold_value):
            self.tracker.reset(rule.id)
            return None

        if not self.tracker.observe_true(
            rule.id, self.clock(), rule.duration_minutes, getattr(rule, "updated_at", None)
        ):
            logger.info(
                f"Rule '{rule.name}' condition holds, waiting for "
                f"{rule.duration_minutes}m to elapse",
                extra=log_context(rule_id=rule.id, since=self.tracker.true_since(rule.id)),
            )
            return None

        return TriggerEvent(
            current_value=float(current),
            message=format_alert_message(
                rule.name, metric_type, float(current), float(rule.threshold_value)
            ),
        )
