"""PromQL construction for metric descriptors.

Range queries wrap a per-metric base expression in an ``<agg>_over_time``
subquery sampled at 1m resolution. When an application label is given the
result is multiplied by an ``up`` guard so a stopped target reads 0 instead
of replaying stale samples.
"""

from datetime import datetime
from typing import Callable

from monitoring.core.contracts import AggregationType, MetricType, TimePeriod

RESOLUTION = "1m"

OVER_TIME_FUNCTIONS: dict[AggregationType, str] = {
    AggregationType.AVG: "avg_over_time",
    AggregationType.SUM: "sum_over_time",
    AggregationType.MIN: "min_over_time",
    AggregationType.MAX: "max_over_time",
    AggregationType.COUNT: "count_over_time",
}

SPATIAL_FUNCTIONS: dict[AggregationType, str] = {
    AggregationType.AVG: "avg",
    AggregationType.SUM: "sum",
    AggregationType.MIN: "min",
    AggregationType.MAX: "max",
    AggregationType.COUNT: "count",
}

STEPS: dict[TimePeriod, str] = {
    TimePeriod.HOUR: "1h",
    TimePeriod.DAY: "1d",
    TimePeriod.WEEK: "1w",
    TimePeriod.MONTH: "30d",
}


def calculate_step(period: TimePeriod, start: datetime, end: datetime) -> str:
    """Range query step for a bucket width."""
    if period == TimePeriod.MINUTE:
        return "15m" if (end - start).total_seconds() <= 3600 else "30m"
    return STEPS.get(period, "1h")


def application_selector(application: str | None) -> str:
    if application and application.strip():
        return f'{{application="{application.strip()}"}}'
    return ""


def with_label(selector: str, label: str) -> str:
    """Add a label matcher to a (possibly empty) selector."""
    if not selector:
        return f"{{{label}}}"
    return selector[:-1] + f", {label}}}"


def _heap_ratio(prefix: str, selector: str) -> str:
    heap = with_label(selector, 'area="heap"')
    used = f"sum by (application) ({prefix}_memory_used_bytes{heap})"
    limit = (
        f"((sum by (application) ({prefix}_memory_max_bytes{heap}) > 0) "
        f"* sum by (application) ({prefix}_memory_max_bytes{heap}) "
        f"or sum by (application) ({prefix}_memory_committed_bytes{heap}))"
    )
    return f"({used} / clamp_min({limit}, 1))"


def _rate_expression(metric_type: MetricType, selector: str, window: str) -> str:
    if metric_type == MetricType.TPS:
        return f"sum(rate(http_server_requests_seconds_count{selector}[{window}]))"
    errors = with_label(selector, 'status=~"5.."')
    return (
        f"(sum(rate(http_server_requests_seconds_count{errors}[{window}])) / "
        f"clamp_min(sum(rate(http_server_requests_seconds_count{selector}[{window}])), 0.001))"
        f" * 100"
    )


def _increase_expression(metric_type: MetricType, selector: str, window: str) -> str:
    if metric_type == MetricType.ERROR_RATE:
        selector = with_label(selector, 'status=~"5.."')
    return f"sum(increase(http_server_requests_seconds_count{selector}[{window}]))"


def _counter(metric_type: MetricType) -> Callable[[str, str, str, str], str]:
    def build(over_time: str, spatial: str, selector: str, step: str) -> str:
        if over_time == OVER_TIME_FUNCTIONS[AggregationType.SUM]:
            return _increase_expression(metric_type, selector, step)
        if over_time == OVER_TIME_FUNCTIONS[AggregationType.COUNT]:
            over_time = OVER_TIME_FUNCTIONS[AggregationType.AVG]
        rate = _rate_expression(metric_type, selector, RESOLUTION)
        return f"{over_time}(({rate})[{step}:{RESOLUTION}])"

    return build


def _gauge(expression: str, scale: str = "") -> Callable[[str, str, str, str], str]:
    def build(over_time: str, spatial: str, selector: str, step: str) -> str:
        inner = expression.format(spatial=spatial, selector=selector)
        return f"{over_time}(({inner})[{step}:{RESOLUTION}]){scale}"

    return build


def _heap(prefix: str) -> Callable[[str, str, str, str], str]:
    def build(over_time: str, spatial: str, selector: str, step: str) -> str:
        return f"{over_time}(({_heap_ratio(prefix, selector)})[{step}:{RESOLUTION}]) * 100"

    return build


def _db_transactions(over_time: str, spatial: str, selector: str, step: str) -> str:
    inner = (
        f"sum(rate(pg_stat_database_xact_commit{selector}[{RESOLUTION}])) + "
        f"sum(rate(pg_stat_database_xact_rollback{selector}[{RESOLUTION}]))"
    )
    return f"avg_over_time(({inner})[{step}:{RESOLUTION}])"


RANGE_BUILDERS: dict[MetricType, Callable[[str, str, str, str], str]] = {
    MetricType.CPU_USAGE: _gauge("{spatial}(process_cpu_usage{selector})", " * 100"),
    MetricType.HEAP_USAGE: _heap("jvm"),
    MetricType.TPS: _counter(MetricType.TPS),
    MetricType.ERROR_RATE: _counter(MetricType.ERROR_RATE),
    MetricType.DB_CONNECTIONS: _gauge("sum(pg_stat_activity_count{selector})"),
    MetricType.DB_SIZE: _gauge("sum(pg_database_size_bytes{selector})"),
    MetricType.DB_TRANSACTIONS: _db_transactions,
    MetricType.ES_JVM_HEAP: _heap("elasticsearch_jvm"),
    MetricType.ES_DATA_SIZE: _gauge("sum(elasticsearch_indices_store_size_bytes{selector})"),
    MetricType.ES_CPU: _gauge("avg(elasticsearch_process_cpu_percent{selector})"),
}


def build_range_query(
    metric_type: MetricType,
    aggregation: AggregationType,
    step: str,
    application: str | None = None,
) -> str:
    """Build the range PromQL for one metric descriptor."""
    selector = application_selector(application)
    builder = RANGE_BUILDERS[metric_type]
    query = builder(
        OVER_TIME_FUNCTIONS[aggregation], SPATIAL_FUNCTIONS[aggregation], selector, step
    )
    if selector:
        return f"({query}) * (max(up{selector}) or vector(0))"
    return query


# Snapshot key -> instant query template, keyed by application family
DEFAULT_SNAPSHOT_QUERIES: dict[str, str] = {
    "cpu_usage": 'process_cpu_usage{{application="{app}"}} * 100',
    "heap_usage": (
        'jvm_memory_used_bytes{{application="{app}",area="heap"}} / '
        'jvm_memory_max_bytes{{application="{app}",area="heap"}} * 100'
    ),
    "tps": 'sum(rate(http_server_requests_seconds_count{{application="{app}"}}[1m]))',
    "error_rate": (
        'sum(rate(http_server_requests_seconds_count{{application="{app}",status=~"5.."}}[5m])) / '
        'sum(rate(http_server_requests_seconds_count{{application="{app}"}}[5m])) * 100'
    ),
}

SNAPSHOT_OVERRIDES: dict[str, dict[str, str | None]] = {
    "postgres": {
        "cpu_usage": "sum(pg_stat_activity_count{{state='active'}})",
        "heap_usage": "sum(pg_database_size_bytes) / 1024 / 1024",
        "tps": 'rate(pg_stat_database_xact_commit{{application="postgres"}}[1m])',
        "error_rate": 'rate(pg_stat_database_xact_rollback{{application="postgres"}}[1m])',
    },
    "elasticsearch": {
        "cpu_usage": (
            "sum(elasticsearch_indices_indexing_index_current) + "
            "sum(elasticsearch_indices_search_query_current)"
        ),
        "heap_usage": "sum(elasticsearch_indices_store_size_bytes) / 1024 / 1024",
        "tps": "rate(elasticsearch_indices_indexing_index_total[1m])",
        # no meaningful error rate is exported
        "error_rate": None,
    },
}


def build_snapshot_queries(application: str | None) -> dict[str, str]:
    """Instant queries for the current snapshot of one application.

    Keys mapped to None in an override are omitted from the snapshot.
    """
    app = (application or "").strip()
    templates: dict[str, str | None] = dict(DEFAULT_SNAPSHOT_QUERIES)
    templates.update(SNAPSHOT_OVERRIDES.get(app, {}))
    return {
        key: template.format(app=app)
        for key, template in templates.items()
        if template is not None
    }
