"""Deployment Rollout & Rollback Engine — Health Monitor.

Each ACTIVE deployment under watch gets a ``MonitorHandle`` owning two
periodic asyncio tasks (SLO and drift evaluation) and a stop event. Stopping
sets the event; a loop notices it before its next tick and any evaluation
already running is allowed to finish.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from src.logging_config import DeploymentContext

from .alerts import (
    AlertRecorder,
    evaluate_drift_breaches,
    evaluate_slo_breaches,
)
from .config import DeploymentStatus, MonitoringConfig
from .exceptions import DeploymentNotFoundError, DeploymentValidationError
from .metrics import summarize_metrics
from .models import CreateRollbackRequest, DeploymentAlert, utcnow
from .store import DeploymentStore

logger = logging.getLogger(__name__)

RollbackHandler = Callable[[str, CreateRollbackRequest, str], Awaitable[object]]


@dataclass
class MonitorHandle:
    """Running monitoring session for one deployment."""

    deployment_id: str
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: List[asyncio.Task] = field(default_factory=list)
    escalated: bool = False

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


class HealthMonitor:
    """Periodic SLO and drift evaluation with optional auto-rollback.

    Args:
        store: Deployment store supplying metrics and receiving alerts.
        config: Intervals, windows, cooldown and escalation policy.
        rollback_handler: Coroutine invoked on escalation with
            ``(deployment_id, request, initiator)``.
        clock: Returns the current aware UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: DeploymentStore,
        config: Optional[MonitoringConfig] = None,
        rollback_handler: Optional[RollbackHandler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._config = config or MonitoringConfig()
        self._rollback_handler = rollback_handler
        self._clock = clock or utcnow
        self._alerts = AlertRecorder(
            store, self._config.alert_cooldown_seconds, clock=self._clock
        )
        self._handles: Dict[str, MonitorHandle] = {}

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    def set_rollback_handler(self, handler: Optional[RollbackHandler]) -> None:
        self._rollback_handler = handler

    def is_monitoring(self, deployment_id: str) -> bool:
        return deployment_id in self._handles

    def monitored_deployments(self) -> List[str]:
        return list(self._handles)

    # ── Lifecycle ────────────────────────────────────────────────────

    def start_monitoring(self, deployment_id: str) -> bool:
        """Begin periodic evaluation; returns False if already monitored.

        Must be called from a running event loop.

        Raises:
            DeploymentNotFoundError: unknown deployment.
            DeploymentValidationError: deployment is not ACTIVE.
        """
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        if deployment.status != DeploymentStatus.ACTIVE:
            raise DeploymentValidationError(
                f"Cannot monitor deployment in status {deployment.status.value}",
                deployment_id,
            )
        if deployment_id in self._handles:
            return False

        handle = MonitorHandle(deployment_id=deployment_id)
        handle.tasks = [
            asyncio.create_task(
                self._loop(handle, self._slo_tick, self._config.slo_check_interval_seconds),
                name=f"slo-monitor-{deployment_id}",
            ),
            asyncio.create_task(
                self._loop(handle, self._drift_tick, self._config.drift_check_interval_seconds),
                name=f"drift-monitor-{deployment_id}",
            ),
        ]
        self._handles[deployment_id] = handle
        logger.info(
            "Started monitoring %s (slo every %gs, drift every %gs)",
            deployment_id,
            self._config.slo_check_interval_seconds,
            self._config.drift_check_interval_seconds,
        )
        return True

    def stop_monitoring(self, deployment_id: str) -> bool:
        """Signal the deployment's loops to stop. Idempotent.

        Returns True if a running session was stopped.
        """
        handle = self._handles.pop(deployment_id, None)
        if handle is None:
            return False
        handle.stop_event.set()
        logger.info("Stopped monitoring %s", deployment_id)
        return True

    async def shutdown(self) -> None:
        """Stop every session and wait for the loops to exit."""
        handles = list(self._handles.values())
        for handle in handles:
            self.stop_monitoring(handle.deployment_id)
        tasks = [task for handle in handles for task in handle.tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Health monitor shut down (%d sessions)", len(handles))

    async def _loop(
        self,
        handle: MonitorHandle,
        tick: Callable[[MonitorHandle], Awaitable[None]],
        interval: float,
    ) -> None:
        while not handle.stopped:
            try:
                await asyncio.wait_for(handle.stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if handle.stopped:
                break
            try:
                with DeploymentContext(deployment_id=handle.deployment_id, operation="monitor"):
                    await tick(handle)
            except Exception:
                logger.exception("Monitoring tick failed for %s", handle.deployment_id)

    async def _slo_tick(self, handle: MonitorHandle) -> None:
        self.evaluate_slos(handle.deployment_id)
        await self._maybe_escalate(handle)

    async def _drift_tick(self, handle: MonitorHandle) -> None:
        self.evaluate_drift(handle.deployment_id)

    # ── Evaluation ───────────────────────────────────────────────────

    def evaluate_slos(self, deployment_id: str) -> List[DeploymentAlert]:
        """Evaluate the trailing SLO window; returns the alerts created."""
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            return []
        now = self._clock()
        samples = self._store.query_metrics(
            deployment_id, now - timedelta(seconds=self._config.slo_window_seconds), now
        )
        if not samples:
            logger.debug("No metrics for %s in SLO window", deployment_id)
            return []
        summary = summarize_metrics(samples)
        candidates = evaluate_slo_breaches(deployment_id, summary, deployment.slo_targets)
        return self._record(candidates)

    def evaluate_drift(self, deployment_id: str) -> List[DeploymentAlert]:
        """Evaluate the trailing drift window; returns the alerts created."""
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            return []
        now = self._clock()
        samples = self._store.query_metrics(
            deployment_id, now - timedelta(seconds=self._config.drift_window_seconds), now
        )
        if not samples:
            logger.debug("No metrics for %s in drift window", deployment_id)
            return []
        summary = summarize_metrics(samples)
        candidates = evaluate_drift_breaches(
            deployment_id, summary, deployment.drift_thresholds
        )
        return self._record(candidates)

    async def check_slos(self, deployment_id: str) -> List[DeploymentAlert]:
        """Run one SLO evaluation plus escalation, outside the timer."""
        created = self.evaluate_slos(deployment_id)
        handle = self._handles.get(deployment_id)
        if handle is not None:
            await self._maybe_escalate(handle)
        return created

    def _record(self, candidates: List[DeploymentAlert]) -> List[DeploymentAlert]:
        created = []
        for candidate in candidates:
            alert = self._alerts.record(candidate)
            if alert is not None:
                created.append(alert)
        return created

    # ── Escalation ───────────────────────────────────────────────────

    async def _maybe_escalate(self, handle: MonitorHandle) -> None:
        if not self._config.auto_rollback_enabled or self._rollback_handler is None:
            return
        if handle.escalated or handle.stopped:
            return

        deployment_id = handle.deployment_id
        critical = self._alerts.count_recent_critical(
            deployment_id, self._config.auto_rollback_window_seconds
        )
        if critical < self._config.auto_rollback_threshold:
            return
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None or deployment.status != DeploymentStatus.ACTIVE:
            return

        handle.escalated = True
        reason = f"auto-rollback: {critical} critical alerts"
        logger.warning("Escalating %s to rollback (%s)", deployment_id, reason)
        try:
            await self._rollback_handler(
                deployment_id, CreateRollbackRequest(reason=reason), "system"
            )
        except Exception:
            logger.exception("Auto-rollback of %s failed", deployment_id)
        finally:
            self.stop_monitoring(deployment_id)
