"""Tests for the REST adapter."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from monitoring.core.contracts import (
    AggregationType,
    DataPoint,
    DataSource,
    MetricType,
    StatisticsResult,
    TimePeriod,
)
from monitoring.core.errors import UpstreamUnavailable
from monitoring.jobs.alert_checks import CheckStats
from monitoring.storage import AlertHistory, AlertHistoryRepo

RULE = {
    "name": "CPU Warn",
    "metricType": "CPU_USAGE",
    "conditionOperator": ">",
    "thresholdValue": 80,
    "application": "eng-study",
    "notificationMethods": ["SLACK"],
}


@pytest.fixture
def blender():
    fake = MagicMock()
    fake.blend = AsyncMock(
        return_value=StatisticsResult(
            metric_type=MetricType.TPS,
            time_period=TimePeriod.HOUR,
            aggregation_type=AggregationType.AVG,
            data_source=DataSource.MIXED,
            data=[DataPoint("2026-06-01 10:00:00", 12.5, 10.0, 15.0, 6)],
        )
    )
    return fake


@pytest.fixture
def alert_scheduler():
    fake = MagicMock()
    fake.run_once = AsyncMock(return_value=CheckStats(rules=2, triggered=1, notified=1))
    return fake


@pytest.fixture
async def client(session_factory, blender, alert_scheduler):
    from monitoring import main

    async def override_session():
        async with session_factory() as session:
            yield session

    main.app.dependency_overrides[main.get_session] = override_session
    main.app.dependency_overrides[main.get_blender] = lambda: blender
    main.app.dependency_overrides[main.get_alert_scheduler] = lambda: alert_scheduler

    async with AsyncClient(
        transport=ASGITransport(app=main.app),
        base_url="http://test",
    ) as http:
        yield http

    main.app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health_endpoint(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.anyio
async def test_rule_lifecycle(client):
    created = await client.post("/api/alerts/rules", json=RULE)
    assert created.status_code == 201
    body = created.json()
    assert body["name"] == "CPU Warn"
    assert body["severity"] == "ERROR"
    assert body["notificationMethods"] == ["SLACK"]
    assert body["isActive"] is True
    rule_id = body["id"]

    fetched = await client.get(f"/api/alerts/rules/{rule_id}")
    assert fetched.json()["thresholdValue"] == 80.0

    updated = await client.put(
        f"/api/alerts/rules/{rule_id}", json={"thresholdValue": 95, "durationMinutes": 5}
    )
    assert updated.status_code == 200
    assert updated.json()["severity"] == "CRITICAL"
    assert updated.json()["durationMinutes"] == 5

    toggled = await client.patch(f"/api/alerts/rules/{rule_id}/toggle")
    assert toggled.json()["isActive"] is False

    by_app = await client.get("/api/alerts/rules/application/eng-study")
    assert [r["id"] for r in by_app.json()] == [rule_id]

    deleted = await client.delete(f"/api/alerts/rules/{rule_id}")
    assert deleted.json() == {"ok": True}
    assert (await client.get(f"/api/alerts/rules/{rule_id}")).status_code == 404
    assert (await client.get("/api/alerts/rules")).json() == []


@pytest.mark.anyio
async def test_duplicate_rule_is_bad_request(client):
    assert (await client.post("/api/alerts/rules", json=RULE)).status_code == 201

    response = await client.post("/api/alerts/rules", json=RULE)

    assert response.status_code == 400
    assert "already exists" in response.json()["error"]


@pytest.mark.anyio
async def test_invalid_rule_is_bad_request(client):
    response = await client.post(
        "/api/alerts/rules", json={**RULE, "conditionOperator": "!="}
    )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_missing_rule_is_not_found(client):
    assert (await client.get("/api/alerts/rules/999")).status_code == 404
    assert (await client.delete("/api/alerts/rules/999")).status_code == 404
    assert (await client.patch("/api/alerts/rules/999/toggle")).status_code == 404


@pytest.mark.anyio
async def test_timeseries_passes_query_to_blender(client, blender):
    response = await client.get(
        "/api/statistics/timeseries",
        params={
            "metricType": "tps",
            "startTime": "2026-06-01 00:00:00",
            "endTime": "2026-06-02 00:00:00",
            "application": "eng-study",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["dataSource"] == "MIXED"
    assert body["data"][0]["timestamp"] == "2026-06-01 10:00:00"

    query = blender.blend.await_args.args[0]
    assert query.metric_type == MetricType.TPS
    assert query.time_period == TimePeriod.HOUR
    assert query.aggregation_type == AggregationType.AVG
    assert query.start_time == datetime(2026, 6, 1)
    assert query.application == "eng-study"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "params",
    [
        {"metricType": "TPS", "startTime": "2026-06-01T00:00:00Z", "endTime": "2026-06-02 00:00:00"},
        {"metricType": "DISK", "startTime": "2026-06-01 00:00:00", "endTime": "2026-06-02 00:00:00"},
        {
            "metricType": "TPS",
            "startTime": "2026-06-01 00:00:00",
            "endTime": "2026-06-02 00:00:00",
            "aggregationType": "MEDIAN",
        },
    ],
)
async def test_timeseries_rejects_bad_parameters(client, blender, params):
    response = await client.get("/api/statistics/timeseries", params=params)

    assert response.status_code == 400
    blender.blend.assert_not_called()


@pytest.mark.anyio
async def test_timeseries_maps_unavailable_upstream_to_503(client, blender):
    blender.blend.side_effect = UpstreamUnavailable("all sources failed", causes=[RuntimeError()])

    response = await client.get(
        "/api/statistics/timeseries",
        params={
            "metricType": "TPS",
            "startTime": "2026-06-01 00:00:00",
            "endTime": "2026-06-02 00:00:00",
        },
    )

    assert response.status_code == 503


@pytest.mark.anyio
async def test_history_listing_and_resolve(client, session_factory):
    triggered = datetime.now(timezone.utc) - timedelta(minutes=10)
    async with session_factory() as session:
        repo = AlertHistoryRepo(session)
        for value in (91.2, 95.0):
            stored = await repo.insert(
                AlertHistory(
                    alert_rule_id=None,
                    rule_name="CPU Warn",
                    triggered_at=triggered,
                    current_value=value,
                    threshold_value=80.0,
                    message="[ALERT] CPU Warn",
                    severity="ERROR",
                    is_resolved=False,
                    notification_sent=True,
                    notification_result="SLACK: sent",
                )
            )

    page = await client.get("/api/alerts/history", params={"page": 0, "size": 1})
    assert page.json()["total"] == 2
    assert len(page.json()["items"]) == 1

    resolved = await client.post(
        f"/api/alerts/history/{stored.id}/resolve", json={"message": "scaled out"}
    )
    assert resolved.status_code == 200
    assert resolved.json()["resolved"] is True
    assert resolved.json()["history"]["resolvedMessage"] == "scaled out"
    assert resolved.json()["history"]["durationMinutes"] >= 9

    again = await client.post(f"/api/alerts/history/{stored.id}/resolve")
    assert again.json()["resolved"] is False

    unresolved = await client.get("/api/alerts/history/unresolved")
    assert len(unresolved.json()) == 1

    assert (await client.post("/api/alerts/history/999/resolve")).status_code == 404
    assert (await client.get("/api/alerts/history", params={"size": 0})).status_code == 400


@pytest.mark.anyio
async def test_manual_alert_check(client, alert_scheduler):
    response = await client.post("/api/alerts/check")

    assert response.status_code == 200
    assert response.json()["triggered"] == 1
    assert response.json()["skipped_overlap"] is False
    alert_scheduler.run_once.assert_awaited_once()
