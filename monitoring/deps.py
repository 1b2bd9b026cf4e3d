"""Process-wide collaborators, built lazily on first use."""

from datetime import timedelta, tzinfo

from monitoring.config import config
from monitoring.core.blender import StatisticsBlender
from monitoring.core.contracts import NotificationMethod
from monitoring.core.evaluator import AlertEvaluator, SustainedConditionTracker
from monitoring.core.normalizer import resolve_timezone
from monitoring.jobs.alert_checks import AlertScheduler
from monitoring.providers.metric_sources import AggregateMetricSource, LiveMetricSource
from monitoring.providers.notifiers import NotificationDispatcher, SlackNotifier
from monitoring.providers.prometheus_client import PrometheusClient
from monitoring.storage.db import get_session_factory

_prometheus_client: PrometheusClient | None = None
_blender: StatisticsBlender | None = None
_evaluator: AlertEvaluator | None = None
_alert_scheduler: AlertScheduler | None = None


def get_stats_timezone() -> tzinfo | None:
    """Calendar for bucketing and display; None means system local."""
    return resolve_timezone(config.stats_timezone)


def get_prometheus_client() -> PrometheusClient:
    global _prometheus_client

    if _prometheus_client is None:
        _prometheus_client = PrometheusClient(
            config.prometheus_url,
            timeout=config.prometheus_timeout_seconds,
        )
    return _prometheus_client


def get_live_source() -> LiveMetricSource:
    return LiveMetricSource(get_prometheus_client())


def get_aggregate_source() -> AggregateMetricSource:
    return AggregateMetricSource(get_session_factory(), tz=get_stats_timezone())


def get_blender() -> StatisticsBlender:
    global _blender

    if _blender is None:
        _blender = StatisticsBlender(
            live_source=get_live_source(),
            aggregate_source=get_aggregate_source(),
            retention=timedelta(days=config.prometheus_retention_days),
            tz=get_stats_timezone(),
        )
    return _blender


def get_evaluator() -> AlertEvaluator:
    """Shared evaluator; its sustained-condition state spans firings."""
    global _evaluator

    if _evaluator is None:
        # missing about two consecutive firings breaks continuity
        tracker = SustainedConditionTracker(
            max_gap=timedelta(seconds=3 * config.alert_check_interval_seconds)
        )
        _evaluator = AlertEvaluator(get_live_source(), tracker=tracker)
    return _evaluator


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        {NotificationMethod.SLACK: SlackNotifier(config.slack_webhook_url)}
    )


def get_alert_scheduler() -> AlertScheduler:
    global _alert_scheduler

    if _alert_scheduler is None:
        _alert_scheduler = AlertScheduler(
            evaluator=get_evaluator(),
            dispatcher=get_dispatcher(),
            session_factory=get_session_factory(),
            evaluation_timeout=config.alert_evaluation_timeout_seconds,
            cooldown_minutes=config.alert_cooldown_minutes,
        )
    return _alert_scheduler


async def close_clients() -> None:
    """Close HTTP clients and forget cached collaborators."""
    global _prometheus_client, _blender, _evaluator, _alert_scheduler

    if _prometheus_client is not None:
        await _prometheus_client.close()
    _prometheus_client = None
    _blender = None
    _evaluator = None
    _alert_scheduler = None
