"""Periodic alert rule checks.

One firing loads the active rules and evaluates them one after another.
A rule whose condition holds produces a history row, a notification
attempt and a trigger-count bump on the rule. Failures stay local to the
rule they happened in; only failing to load the rule list aborts a firing.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monitoring.core.contracts import TriggerEvent
from monitoring.core.errors import UpstreamUnavailable
from monitoring.core.evaluator import AlertEvaluator
from monitoring.logging import get_logger, log_context
from monitoring.providers.notifiers import NotificationDispatcher
from monitoring.storage.db import ensure_utc
from monitoring.storage.models import AlertHistory, AlertRule
from monitoring.storage.repo_alert_history import AlertHistoryRepo
from monitoring.storage.repo_alert_rules import AlertRulesRepo

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckStats:
    """Outcome counters of one firing."""

    rules: int = 0
    triggered: int = 0
    notified: int = 0
    suppressed: int = 0
    failed: int = 0
    skipped_overlap: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class AlertScheduler:
    """Runs alert checks; never two firings at once."""

    def __init__(
        self,
        evaluator: AlertEvaluator,
        dispatcher: NotificationDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        evaluation_timeout: float = 15.0,
        cooldown_minutes: int = 0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.evaluator = evaluator
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.evaluation_timeout = evaluation_timeout
        self.cooldown = timedelta(minutes=cooldown_minutes) if cooldown_minutes > 0 else None
        self.clock = clock
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> CheckStats:
        """Run one firing over all active rules.

        Returns:
            CheckStats; ``skipped_overlap`` is set when a firing was already running

        Raises:
            UpstreamUnavailable: If the active rules cannot be loaded
        """
        if self._lock.locked():
            logger.warning("Alert check already running, skipping this firing")
            return CheckStats(skipped_overlap=True)

        async with self._lock:
            rules = await self._load_active_rules()
            self.evaluator.retain(rule.id for rule in rules)
            stats = CheckStats(rules=len(rules))
            if not rules:
                return stats

            logger.info(f"Checking {len(rules)} alert rules")
            for rule in rules:
                await self._process_rule(rule, stats)

            logger.info(
                "Alert check finished",
                extra=log_context(**stats.to_dict()),
            )
            return stats

    async def _load_active_rules(self) -> list[AlertRule]:
        try:
            async with self.session_factory() as session:
                return await AlertRulesRepo(session).list_active()
        except Exception as e:
            logger.exception("Failed to load active alert rules")
            raise UpstreamUnavailable(f"Alert rule store unavailable: {e}", causes=[e])

    async def _process_rule(self, rule: AlertRule, stats: CheckStats) -> None:
        context = log_context(rule_id=rule.id, rule=rule.name, application=rule.application)
        try:
            event = await asyncio.wait_for(
                self.evaluator.evaluate(rule), timeout=self.evaluation_timeout
            )
        except asyncio.TimeoutError:
            stats.failed += 1
            logger.error(
                f"Evaluation timed out after {self.evaluation_timeout}s", extra=context
            )
            return
        except Exception as e:
            stats.failed += 1
            logger.error(f"Evaluation failed: {e}", extra=context)
            return

        if event is None:
            return

        now = self.clock()
        if self._in_cooldown(rule, now):
            stats.suppressed += 1
            logger.info("Rule triggered within cooldown, not re-notifying", extra=context)
            return

        stats.triggered += 1
        logger.info(f"Alert triggered: {event.message}", extra=context)
        try:
            history = await self._record(rule, event, now)
        except Exception as e:
            stats.failed += 1
            logger.exception(f"Failed to record alert: {e}", extra=context)
            return

        if history.notification_sent:
            stats.notified += 1
        logger.info(
            f"Alert history saved (id={history.id})",
            extra=log_context(
                rule_id=rule.id,
                notification_sent=history.notification_sent,
                notification_result=history.notification_result,
            ),
        )

        try:
            await self._mark_triggered(rule, now)
        except Exception as e:
            # history is already stored; only last_triggered_at and the count are stale
            logger.exception(f"Failed to update trigger state of rule: {e}", extra=context)

    def _in_cooldown(self, rule: AlertRule, now: datetime) -> bool:
        if self.cooldown is None or rule.last_triggered_at is None:
            return False
        return now - ensure_utc(rule.last_triggered_at) < self.cooldown

    async def _record(self, rule: AlertRule, event: TriggerEvent, now: datetime) -> AlertHistory:
        history = AlertHistory(
            alert_rule_id=rule.id,
            rule_name=rule.name,
            triggered_at=now,
            current_value=event.current_value,
            threshold_value=rule.threshold_value,
            message=event.message,
            severity=rule.severity,
            is_resolved=False,
            notification_sent=False,
        )

        sent, result = await self.dispatcher.dispatch(rule.methods, event.message)
        history.notification_sent = sent
        history.notification_result = result

        async with self.session_factory() as session:
            history = await AlertHistoryRepo(session).insert(history)

        return history

    async def _mark_triggered(self, rule: AlertRule, now: datetime) -> None:
        async with self.session_factory() as session:
            await AlertRulesRepo(session).mark_triggered(rule.id, now)


async def run_alert_checks() -> dict:
    """Scheduled entry point: one firing of the shared alert scheduler.

    Returns:
        Summary dict of the firing
    """
    from monitoring.deps import get_alert_scheduler

    try:
        stats = await get_alert_scheduler().run_once()
    except UpstreamUnavailable as e:
        logger.error(f"Alert check aborted: {e}")
        return {"error": str(e)}
    return stats.to_dict()
