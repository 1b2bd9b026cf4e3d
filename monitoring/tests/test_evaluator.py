"""Tests for alert rule evaluation."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from monitoring.core.contracts import ConditionOperator, MetricType, Severity
from monitoring.core.errors import InvalidArgument
from monitoring.core.evaluator import (
    AlertEvaluator,
    SustainedConditionTracker,
    condition_holds,
    determine_severity,
)
from monitoring.providers.prometheus_client import PrometheusError


def _rule(**overrides):
    fields = dict(
        id=1,
        name="CPU Warn",
        application="eng-study",
        metric_type="CPU_USAGE",
        condition_operator=">",
        threshold_value=80.0,
        duration_minutes=0,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _live(snapshot):
    live = MagicMock()
    live.current_snapshot = AsyncMock(return_value=snapshot)
    return live


T0 = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now += timedelta(minutes=minutes)


@pytest.mark.anyio
async def test_value_above_threshold_triggers():
    evaluator = AlertEvaluator(_live({"cpu_usage": 85.0}))

    event = await evaluator.evaluate(_rule())

    assert event is not None
    assert event.current_value == 85.0
    assert "CPU Warn" in event.message
    assert "85.00" in event.message
    assert "80.00" in event.message


@pytest.mark.anyio
async def test_value_equal_to_threshold_with_strict_operator_does_not_trigger():
    evaluator = AlertEvaluator(_live({"cpu_usage": 80.0}))

    assert await evaluator.evaluate(_rule()) is None


@pytest.mark.anyio
async def test_value_equal_to_threshold_with_inclusive_operator_triggers():
    evaluator = AlertEvaluator(_live({"cpu_usage": 80}))

    event = await evaluator.evaluate(_rule(condition_operator=">="))

    assert event is not None
    assert event.current_value == 80.0


@pytest.mark.anyio
async def test_missing_metric_is_skipped_without_error():
    live = _live({"heap_usage": 50.0})
    evaluator = AlertEvaluator(live)

    assert await evaluator.evaluate(_rule()) is None
    live.current_snapshot.assert_awaited_once_with("eng-study")


@pytest.mark.anyio
async def test_metric_without_snapshot_key_is_never_fetched():
    live = _live({"cpu_usage": 99.0})
    evaluator = AlertEvaluator(live)

    assert await evaluator.evaluate(_rule(metric_type="DB_SIZE")) is None
    live.current_snapshot.assert_not_called()


@pytest.mark.anyio
async def test_unknown_operator_is_rejected():
    evaluator = AlertEvaluator(_live({"cpu_usage": 99.0}))

    with pytest.raises(InvalidArgument):
        await evaluator.evaluate(_rule(condition_operator="!="))


@pytest.mark.anyio
async def test_upstream_error_propagates():
    live = MagicMock()
    live.current_snapshot = AsyncMock(side_effect=PrometheusError("down"))
    evaluator = AlertEvaluator(live)

    with pytest.raises(PrometheusError):
        await evaluator.evaluate(_rule())


@pytest.mark.anyio
async def test_duration_requires_condition_to_hold_continuously():
    clock = _Clock(datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc))
    live = _live({"cpu_usage": 95.0})
    evaluator = AlertEvaluator(live, clock=clock)
    rule = _rule(duration_minutes=5)

    assert await evaluator.evaluate(rule) is None
    clock.advance(3)
    assert await evaluator.evaluate(rule) is None
    clock.advance(2)
    assert await evaluator.evaluate(rule) is not None
    clock.advance(1)
    assert await evaluator.evaluate(rule) is not None


@pytest.mark.anyio
async def test_false_observation_resets_duration():
    clock = _Clock(datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc))
    live = _live({"cpu_usage": 95.0})
    evaluator = AlertEvaluator(live, clock=clock)
    rule = _rule(duration_minutes=5)

    assert await evaluator.evaluate(rule) is None
    clock.advance(4)
    live.current_snapshot.return_value = {"cpu_usage": 50.0}
    assert await evaluator.evaluate(rule) is None

    live.current_snapshot.return_value = {"cpu_usage": 95.0}
    clock.advance(2)
    assert await evaluator.evaluate(rule) is None
    clock.advance(4)
    assert await evaluator.evaluate(rule) is None
    clock.advance(1)
    assert await evaluator.evaluate(rule) is not None


@pytest.mark.anyio
async def test_timed_out_snapshot_breaks_continuity():
    clock = _Clock(T0)
    live = _live({"cpu_usage": 95.0})
    evaluator = AlertEvaluator(live, clock=clock)
    rule = _rule(duration_minutes=5)

    assert await evaluator.evaluate(rule) is None
    assert evaluator.tracker.true_since(rule.id) == T0

    async def hang(application):
        await asyncio.sleep(5)

    live.current_snapshot.side_effect = hang
    clock.advance(3)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(evaluator.evaluate(rule), timeout=0.05)
    assert evaluator.tracker.true_since(rule.id) is None

    live.current_snapshot.side_effect = None
    clock.advance(3)
    assert await evaluator.evaluate(rule) is None
    clock.advance(5)
    assert await evaluator.evaluate(rule) is not None


@pytest.mark.anyio
async def test_changed_rule_restarts_duration():
    clock = _Clock(T0)
    evaluator = AlertEvaluator(_live({"cpu_usage": 95.0}), clock=clock)

    assert await evaluator.evaluate(_rule(duration_minutes=5, updated_at=T0)) is None
    clock.advance(6)
    edited = _rule(duration_minutes=5, updated_at=T0 + timedelta(minutes=4))
    assert await evaluator.evaluate(edited) is None
    clock.advance(5)
    assert await evaluator.evaluate(edited) is not None


@pytest.mark.anyio
async def test_unobserved_gap_restarts_duration():
    clock = _Clock(T0)
    tracker = SustainedConditionTracker(max_gap=timedelta(minutes=3))
    evaluator = AlertEvaluator(_live({"cpu_usage": 95.0}), tracker=tracker, clock=clock)
    rule = _rule(duration_minutes=5)

    assert await evaluator.evaluate(rule) is None
    clock.advance(120)
    assert await evaluator.evaluate(rule) is None
    assert tracker.true_since(rule.id) == T0 + timedelta(minutes=120)
    clock.advance(2)
    assert await evaluator.evaluate(rule) is None
    clock.advance(3)
    assert await evaluator.evaluate(rule) is not None


def test_retain_forgets_rules_outside_the_active_set():
    tracker = SustainedConditionTracker()
    tracker.observe_true(1, T0, 5)
    tracker.observe_true(2, T0, 5)

    tracker.retain([2])

    assert tracker.true_since(1) is None
    assert tracker.true_since(2) == T0

@pytest.mark.parametrize(
    "current,op,threshold,expected",
    [
        (80.0, ">", 80, False),
        (80.0, ">=", 80, True),
        (80.0, "==", 80, True),
        (79.99, "<", 80, True),
        (80.01, "<=", 80, False),
        (0.1, "==", 0.1, True),
    ],
)
def test_condition_holds(current, op, threshold, expected):
    assert condition_holds(current, ConditionOperator(op), threshold) is expected


@pytest.mark.parametrize(
    "metric_type,threshold,expected",
    [
        (MetricType.CPU_USAGE, 95, Severity.CRITICAL),
        (MetricType.CPU_USAGE, 80, Severity.ERROR),
        (MetricType.HEAP_USAGE, 75, Severity.WARNING),
        (MetricType.HEAP_USAGE, 50, Severity.INFO),
        (MetricType.ERROR_RATE, 10, Severity.CRITICAL),
        (MetricType.ERROR_RATE, 1, Severity.WARNING),
        (MetricType.DB_CONNECTIONS, 80, Severity.ERROR),
        (MetricType.DB_SIZE, 20000, Severity.CRITICAL),
        (MetricType.TPS, 1, Severity.WARNING),
        (MetricType.ES_CPU, 99, Severity.INFO),
        ("NOT_A_METRIC", 99, Severity.INFO),
    ],
)
def test_determine_severity(metric_type, threshold, expected):
    assert determine_severity(metric_type, threshold) == expected
