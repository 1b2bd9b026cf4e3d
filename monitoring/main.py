"""Application entrypoint: thin REST adapter and scheduler lifecycle."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from monitoring import __version__
from monitoring.config import config
from monitoring.core.blender import StatisticsBlender
from monitoring.core.contracts import (
    AggregationType,
    MetricQuery,
    MetricType,
    TimePeriod,
    parse_enum,
)
from monitoring.core.errors import InvalidArgument, NotFound, UpstreamUnavailable
from monitoring.core.normalizer import parse_timestamp
from monitoring.jobs.alert_checks import AlertScheduler
from monitoring.logging import get_logger, log_context, setup_logging

setup_logging(config.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    from monitoring.deps import close_clients
    from monitoring.jobs import setup_all_jobs, shutdown_scheduler, start_scheduler
    from monitoring.storage import close_engine, create_tables

    logger.info("Starting application")

    # Ensure all tables exist (dev convenience, idempotent)
    await create_tables()
    logger.info("Database tables ensured")

    if config.scheduler_enabled:
        start_scheduler()
        setup_all_jobs()
    else:
        logger.info("Scheduler disabled: SCHEDULER_ENABLED=false")

    yield

    logger.info("Shutting down application")
    shutdown_scheduler()
    await close_clients()
    await close_engine()


app = FastAPI(
    title="Study Monitoring",
    version=__version__,
    lifespan=lifespan,
)


# ------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidArgument)
async def invalid_argument_handler(request: Request, exc: InvalidArgument) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(
    request: Request, exc: UpstreamUnavailable
) -> JSONResponse:
    logger.error(
        f"Upstream unavailable: {exc}",
        extra=log_context(path=request.url.path, causes=len(exc.causes)),
    )
    return JSONResponse(status_code=503, content={"error": str(exc)})


# ------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    from monitoring.storage import get_session_factory

    async with get_session_factory()() as session:
        yield session


def get_blender() -> StatisticsBlender:
    from monitoring.deps import get_blender as build

    return build()


def get_alert_scheduler() -> AlertScheduler:
    from monitoring.deps import get_alert_scheduler as build

    return build()


# ------------------------------------------------------------------
# Payloads
# ------------------------------------------------------------------

class AlertRulePayload(BaseModel):
    """Create payload for an alert rule."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    metric_type: str = Field(alias="metricType")
    condition_operator: str = Field(alias="conditionOperator")
    threshold_value: float = Field(alias="thresholdValue")
    application: str | None = None
    duration_minutes: int = Field(0, alias="durationMinutes")
    severity: str | None = None
    notification_methods: list[str] = Field(default_factory=list, alias="notificationMethods")
    description: str | None = None
    is_active: bool = Field(True, alias="isActive")


class AlertRuleUpdatePayload(BaseModel):
    """Partial update payload; omitted fields are left untouched."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    metric_type: str | None = Field(None, alias="metricType")
    condition_operator: str | None = Field(None, alias="conditionOperator")
    threshold_value: float | None = Field(None, alias="thresholdValue")
    application: str | None = None
    duration_minutes: int | None = Field(None, alias="durationMinutes")
    severity: str | None = None
    notification_methods: list[str] | None = Field(None, alias="notificationMethods")
    description: str | None = None
    is_active: bool | None = Field(None, alias="isActive")


class ResolvePayload(BaseModel):
    """Resolve payload for an alert history record."""

    message: str | None = None


# ------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------

@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True}


@app.get("/api/statistics/timeseries")
async def get_timeseries(
    metric_type: str = Query(..., alias="metricType"),
    start_time: str = Query(..., alias="startTime"),
    end_time: str = Query(..., alias="endTime"),
    time_period: str = Query("HOUR", alias="timePeriod"),
    aggregation_type: str = Query("AVG", alias="aggregationType"),
    application: str | None = None,
    blender: StatisticsBlender = Depends(get_blender),
) -> dict:
    """Blended time series across the live and aggregate sources.

    Times are ``YYYY-MM-DD HH:MM:SS`` in the statistics timezone.
    """
    query = MetricQuery(
        metric_type=parse_enum(MetricType, metric_type, "metric type"),
        aggregation_type=parse_enum(AggregationType, aggregation_type, "aggregation type"),
        time_period=parse_enum(TimePeriod, time_period, "time period"),
        start_time=parse_timestamp(start_time),
        end_time=parse_timestamp(end_time),
        application=application or None,
    )
    result = await blender.blend(query)
    return result.to_dict()


@app.get("/api/alerts/rules")
async def list_rules(session: AsyncSession = Depends(get_session)) -> list[dict]:
    """List every alert rule."""
    from monitoring.storage import AlertRulesRepo

    rules = await AlertRulesRepo(session).list_all()
    return [rule.to_dict() for rule in rules]


@app.post("/api/alerts/rules", status_code=201)
async def create_rule(
    payload: AlertRulePayload,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Create an alert rule."""
    from monitoring.storage import AlertRulesRepo

    rule = await AlertRulesRepo(session).create_rule(**payload.model_dump())
    logger.info(f"Created alert rule '{rule.name}'", extra=log_context(rule_id=rule.id))
    return rule.to_dict()


@app.get("/api/alerts/rules/application/{application}")
async def list_rules_by_application(
    application: str,
    session: AsyncSession = Depends(get_session),
) -> list[dict]:
    """List rules of one application."""
    from monitoring.storage import AlertRulesRepo

    rules = await AlertRulesRepo(session).list_by_application(application)
    return [rule.to_dict() for rule in rules]


@app.get("/api/alerts/rules/{rule_id}")
async def get_rule(rule_id: int, session: AsyncSession = Depends(get_session)) -> dict:
    """Get one alert rule."""
    from monitoring.storage import AlertRulesRepo

    rule = await AlertRulesRepo(session).require_rule(rule_id)
    return rule.to_dict()


@app.put("/api/alerts/rules/{rule_id}")
async def update_rule(
    rule_id: int,
    payload: AlertRuleUpdatePayload,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Update an alert rule."""
    from monitoring.storage import AlertRulesRepo

    rule = await AlertRulesRepo(session).update_rule(
        rule_id, **payload.model_dump(exclude_none=True)
    )
    return rule.to_dict()


@app.delete("/api/alerts/rules/{rule_id}")
async def delete_rule(rule_id: int, session: AsyncSession = Depends(get_session)) -> dict:
    """Delete an alert rule; its history is kept."""
    from monitoring.storage import AlertRulesRepo

    await AlertRulesRepo(session).delete_rule(rule_id)
    logger.info("Deleted alert rule", extra=log_context(rule_id=rule_id))
    return {"ok": True}


@app.patch("/api/alerts/rules/{rule_id}/toggle")
async def toggle_rule(rule_id: int, session: AsyncSession = Depends(get_session)) -> dict:
    """Flip the active flag of an alert rule."""
    from monitoring.storage import AlertRulesRepo

    rule = await AlertRulesRepo(session).toggle(rule_id)
    return rule.to_dict()


@app.get("/api/alerts/history")
async def list_history(
    page: int = 0,
    size: int = 20,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Recent alert history, newest first (zero-based pages)."""
    from monitoring.storage import AlertHistoryRepo

    repo = AlertHistoryRepo(session)
    items = await repo.list_recent(page=page, size=size)
    total = await repo.count()
    return {
        "page": page,
        "size": size,
        "total": total,
        "items": [h.to_dict() for h in items],
    }


@app.get("/api/alerts/history/unresolved")
async def list_unresolved_history(session: AsyncSession = Depends(get_session)) -> list[dict]:
    """Every unresolved alert."""
    from monitoring.storage import AlertHistoryRepo

    items = await AlertHistoryRepo(session).list_unresolved()
    return [h.to_dict() for h in items]


@app.get("/api/alerts/history/rule/{rule_id}")
async def list_rule_history(
    rule_id: int,
    page: int = 0,
    size: int = 20,
    session: AsyncSession = Depends(get_session),
) -> list[dict]:
    """History of one rule, newest first."""
    from monitoring.storage import AlertHistoryRepo

    items = await AlertHistoryRepo(session).list_by_rule(rule_id, page=page, size=size)
    return [h.to_dict() for h in items]


@app.post("/api/alerts/history/{history_id}/resolve")
async def resolve_history(
    history_id: int,
    payload: ResolvePayload | None = None,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Resolve an alert; resolving twice is a no-op."""
    from monitoring.storage import AlertHistoryRepo

    repo = AlertHistoryRepo(session)
    resolved = await repo.resolve(history_id, payload.message if payload else None)
    history = await repo.get(history_id)
    return {"resolved": resolved, "history": history.to_dict()}


@app.post("/api/alerts/check")
async def run_alert_check(
    scheduler: AlertScheduler = Depends(get_alert_scheduler),
) -> dict:
    """Run one alert firing immediately."""
    logger.info("Manual alert check requested")
    stats = await scheduler.run_once()
    return stats.to_dict()


def run() -> None:
    """Run the HTTP server."""
    uvicorn.run(
        "monitoring.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    run()
