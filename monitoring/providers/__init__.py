"""External collaborators: Prometheus, the aggregate store adapter, notifiers."""

from monitoring.providers.metric_sources import AggregateMetricSource, LiveMetricSource
from monitoring.providers.notifiers import NotificationDispatcher, SlackNotifier
from monitoring.providers.prometheus_client import PrometheusClient, PrometheusError

__all__ = [
    "AggregateMetricSource",
    "LiveMetricSource",
    "NotificationDispatcher",
    "PrometheusClient",
    "PrometheusError",
    "SlackNotifier",
]
