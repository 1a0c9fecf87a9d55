"""Deployment Rollout & Rollback Engine — Orchestrator.

Composition root: wires the store, traffic manager, health gate, strategy
executor, health monitor and rollback coordinator together, and owns the
background tasks that run rollouts and rollbacks.
"""

import asyncio
import enum
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Type

from src.logging_config import DeploymentContext, log_duration

from .alerts import count_critical
from .config import (
    AlertSeverity,
    AlertType,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    OrchestratorConfig,
    can_transition,
)
from .exceptions import (
    DeploymentNotFoundError,
    DeploymentValidationError,
    RollbackError,
    RolloutAbortedError,
)
from .gate import HealthCheckGate
from .models import (
    CreateDeploymentRequest,
    CreateRollbackRequest,
    Deployment,
    DeploymentAlert,
    DeploymentMetrics,
    HealthSummary,
    RollbackOperation,
    TrafficSplit,
    utcnow,
)
from .monitor import HealthMonitor
from .provisioning import NoopProvisioner, Provisioner
from .rollback import RollbackCoordinator
from .store import (
    DeploymentFilter,
    DeploymentStore,
    InMemoryDeploymentStore,
    transition_status,
)
from .strategies import StrategyExecutor
from .traffic import TrafficManager

logger = logging.getLogger(__name__)

FAILURE_ROLLBACK_REASON = "Automatic rollback due to deployment failure"


def _coerce_enum(enum_cls: Type[enum.Enum], value: object, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise DeploymentValidationError(
            f"Invalid {field_name} '{value}' (expected one of: {allowed})"
        ) from None


class DeploymentOrchestrator:
    """Manages deployments from rollout request to ACTIVE, FAILED or ROLLED_BACK.

    Args:
        store: Persistence; defaults to an in-memory store.
        provisioner: Workload provisioner; defaults to ``NoopProvisioner``.
        config: Engine configuration.
        clock: Wall clock returning aware UTC datetimes (metric windows).
        sleep: Awaitable sleep used by the rollout (delays and gate polling).
        monotonic: Monotonic clock used by the health gate timeout.
    """

    def __init__(
        self,
        store: Optional[DeploymentStore] = None,
        provisioner: Optional[Provisioner] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ):
        self._store = store if store is not None else InMemoryDeploymentStore()
        self._provisioner = provisioner or NoopProvisioner()
        self._config = config or OrchestratorConfig()
        self._clock = clock or utcnow

        self._traffic = TrafficManager(self._store)
        self._gate = HealthCheckGate(
            self._provisioner, self._config.rollout, clock=monotonic, sleep=sleep
        )
        self._executor = StrategyExecutor(
            self._store, self._traffic, self._gate, self._config.rollout, sleep=sleep
        )
        self._monitor = HealthMonitor(self._store, self._config.monitoring, clock=self._clock)
        self._rollback = RollbackCoordinator(
            self._store,
            self._traffic,
            self._config.rollback,
            stop_monitoring=self._monitor.stop_monitoring,
            gate=self._gate,
        )
        self._monitor.set_rollback_handler(self._rollback.execute_rollback)

        self._rollouts: Dict[str, asyncio.Task] = {}
        self._rollback_tasks: Dict[str, asyncio.Task] = {}

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def store(self) -> DeploymentStore:
        return self._store

    @property
    def monitor(self) -> HealthMonitor:
        return self._monitor

    @property
    def rollback_coordinator(self) -> RollbackCoordinator:
        return self._rollback

    @property
    def traffic(self) -> TrafficManager:
        return self._traffic

    # ── Rollout ──────────────────────────────────────────────────────

    async def start_rollout(
        self, request: CreateDeploymentRequest, initiator: str = "system"
    ) -> Deployment:
        """Persist a PENDING deployment and start rolling it out in the background.

        Raises:
            DeploymentValidationError: unknown strategy/environment or bad input.
        """
        if not request.model_version_id:
            raise DeploymentValidationError("model_version_id is required")
        environment = _coerce_enum(Environment, request.environment, "environment")
        strategy = _coerce_enum(DeploymentStrategy, request.strategy, "strategy")
        if request.configuration.replicas < 1:
            raise DeploymentValidationError(
                f"replicas must be positive, got {request.configuration.replicas}"
            )

        deployment = self._store.create_deployment(
            Deployment(
                model_version_id=request.model_version_id,
                environment=environment,
                strategy=strategy,
                configuration=request.configuration,
                slo_targets=request.slo_targets,
                drift_thresholds=request.drift_thresholds,
                deployed_by=initiator,
            )
        )
        logger.info(
            "Created deployment %s for version %s in %s (strategy=%s, by %s)",
            deployment.deployment_id,
            deployment.model_version_id,
            environment.value,
            strategy.value,
            initiator,
        )
        self._rollouts[deployment.deployment_id] = asyncio.create_task(
            self._run_rollout(deployment.deployment_id, initiator),
            name=f"rollout-{deployment.deployment_id}",
        )
        return deployment

    @log_duration("rollout")
    async def _run_rollout(self, deployment_id: str, initiator: str) -> None:
        with DeploymentContext(deployment_id=deployment_id, operation="rollout", initiator=initiator):
            try:
                await self._executor.execute(deployment_id)
            except asyncio.CancelledError:
                await self._handle_failure(
                    deployment_id,
                    RolloutAbortedError(f"Rollout of {deployment_id} aborted", deployment_id),
                )
                raise
            except Exception as exc:
                await self._handle_failure(deployment_id, exc)
                return
            finally:
                self._rollouts.pop(deployment_id, None)

            logger.info("Deployment %s is now ACTIVE", deployment_id)
            self._monitor.start_monitoring(deployment_id)

    async def _handle_failure(self, deployment_id: str, error: BaseException) -> None:
        """Mark FAILED, raise the failure alert and optionally roll back."""
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            return
        if not can_transition(deployment.status, DeploymentStatus.FAILED):
            logger.warning(
                "Not marking %s FAILED from status %s",
                deployment_id,
                deployment.status.value,
            )
            return
        transition_status(self._store, deployment_id, DeploymentStatus.FAILED)
        logger.error("Deployment %s failed: %s", deployment_id, error)

        self._store.create_alert(
            DeploymentAlert(
                deployment_id=deployment_id,
                alert_type=AlertType.SLO_BREACH,
                severity=AlertSeverity.CRITICAL,
                message=f"Deployment failed: {error}",
                threshold=0.0,
                actual_value=1.0,
                triggered_at=self._clock(),
            )
        )

        if not self._config.auto_rollback_on_failure:
            return
        try:
            options = self._rollback.get_one_click_options(deployment_id)
            if not options:
                logger.info("No rollback target for failed deployment %s", deployment_id)
                return
            await self._rollback.execute_rollback(
                deployment_id,
                CreateRollbackRequest(
                    reason=FAILURE_ROLLBACK_REASON,
                    target_version_id=options[0].model_version_id,
                ),
                "system",
            )
        except Exception:
            logger.exception("Automatic rollback of %s failed", deployment_id)

    async def abort_rollout(self, deployment_id: str, initiator: str = "system") -> bool:
        """Cancel a running rollout.

        Traffic stays at the last split that was applied; the deployment goes
        through the usual failure handling. Returns False if no rollout for
        the deployment is running.
        """
        task = self._rollouts.get(deployment_id)
        if task is None or task.done():
            return False
        logger.warning("Rollout of %s aborted by %s", deployment_id, initiator)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        # A task cancelled before its first step never reaches its handler.
        deployment = self._store.get_deployment(deployment_id)
        if deployment is not None and deployment.status in (
            DeploymentStatus.PENDING,
            DeploymentStatus.DEPLOYING,
        ):
            self._rollouts.pop(deployment_id, None)
            await self._handle_failure(
                deployment_id,
                RolloutAbortedError(f"Rollout of {deployment_id} aborted", deployment_id),
            )
        return True

    def is_rollout_running(self, deployment_id: str) -> bool:
        task = self._rollouts.get(deployment_id)
        return task is not None and not task.done()

    async def wait_for_rollout(self, deployment_id: str) -> Deployment:
        """Wait for a background rollout to finish and return the deployment."""
        task = self._rollouts.get(deployment_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.get_deployment(deployment_id)

    # ── Health ───────────────────────────────────────────────────────

    def get_deployment_health(self, deployment_id: str) -> HealthSummary:
        """Score the deployment from its open alerts and latest metrics."""
        deployment = self.get_deployment(deployment_id)
        alerts = self._store.list_alerts(deployment_id, include_resolved=False)
        critical = count_critical(alerts)

        score = 100 - 30 * critical - 10 * (len(alerts) - critical)

        now = self._clock()
        samples = self._store.query_metrics(
            deployment_id,
            now - timedelta(seconds=self._config.health_window_seconds),
            now,
        )
        latest = samples[-1] if samples else None
        if latest is not None:
            targets = deployment.slo_targets
            if latest.availability < targets.availability:
                score -= 20
            if latest.error_rate > targets.error_rate:
                score -= 15
            if latest.latency_p95 > targets.latency_p95:
                score -= 10

        return HealthSummary(
            deployment_id=deployment_id,
            status=deployment.status,
            health_score=max(0, score),
            active_alerts=len(alerts),
            critical_alerts=critical,
            last_metrics_timestamp=latest.timestamp if latest else None,
        )

    def start_monitoring(self, deployment_id: str) -> bool:
        return self._monitor.start_monitoring(deployment_id)

    def stop_monitoring(self, deployment_id: str) -> bool:
        return self._monitor.stop_monitoring(deployment_id)

    def record_metrics(self, metrics: DeploymentMetrics) -> DeploymentMetrics:
        self.get_deployment(metrics.deployment_id)
        return self._store.append_metrics(metrics)

    def list_alerts(self, deployment_id: str, include_resolved: bool = False) -> List[DeploymentAlert]:
        self.get_deployment(deployment_id)
        return self._store.list_alerts(deployment_id, include_resolved=include_resolved)

    def acknowledge_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        alert = self._store.acknowledge_alert(alert_id)
        if alert is not None:
            logger.info("Alert %s acknowledged", alert_id)
        return alert

    def resolve_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        alert = self._store.resolve_alert(alert_id)
        if alert is not None:
            logger.info("Alert %s resolved", alert_id)
        return alert

    # ── Rollback ─────────────────────────────────────────────────────

    def get_rollback_options(self, deployment_id: str) -> List[Deployment]:
        return self._rollback.get_one_click_options(deployment_id)

    async def rollback(
        self,
        deployment_id: str,
        request: CreateRollbackRequest,
        initiator: str = "system",
    ) -> RollbackOperation:
        """Record a rollback and run it in the background.

        The returned operation is PENDING and can be cancelled until the
        background task picks it up.
        """
        operation = self._rollback.create_operation(deployment_id, request, initiator)
        self._rollback_tasks[operation.rollback_id] = asyncio.create_task(
            self._run_rollback(operation.rollback_id),
            name=f"rollback-{operation.rollback_id}",
        )
        return operation

    async def _run_rollback(self, rollback_id: str) -> None:
        try:
            await self._rollback.run_operation(rollback_id)
        except RollbackError as exc:
            logger.error("Background rollback %s failed: %s", rollback_id, exc)
        finally:
            self._rollback_tasks.pop(rollback_id, None)

    async def wait_for_rollback(self, rollback_id: str) -> Optional[RollbackOperation]:
        task = self._rollback_tasks.get(rollback_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._rollback.get_rollback(rollback_id)

    def cancel_rollback(self, rollback_id: str) -> bool:
        return self._rollback.cancel_rollback(rollback_id)

    def get_rollback(self, rollback_id: str) -> Optional[RollbackOperation]:
        return self._rollback.get_rollback(rollback_id)

    # ── Queries ──────────────────────────────────────────────────────

    def get_deployment(self, deployment_id: str) -> Deployment:
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return deployment

    def list_deployments(
        self,
        environment: Optional[Environment] = None,
        status: Optional[DeploymentStatus] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> List[Deployment]:
        return self._store.list_deployments(
            DeploymentFilter(environment=environment, status=status, limit=limit, offset=offset)
        )

    def list_traffic_splits(self, deployment_id: str) -> List[TrafficSplit]:
        self.get_deployment(deployment_id)
        return self._traffic.get_splits(deployment_id)

    def get_summary(self) -> dict:
        """Return aggregate deployment statistics."""
        deployments = self._store.list_deployments(DeploymentFilter())
        by_status = {status.value: 0 for status in DeploymentStatus}
        for deployment in deployments:
            by_status[deployment.status.value] += 1
        active = by_status[DeploymentStatus.ACTIVE.value]
        finished = (
            active
            + by_status[DeploymentStatus.FAILED.value]
            + by_status[DeploymentStatus.ROLLED_BACK.value]
        )
        return {
            "total": len(deployments),
            "by_status": by_status,
            "running_rollouts": sum(1 for t in self._rollouts.values() if not t.done()),
            "monitored": len(self._monitor.monitored_deployments()),
            "success_rate": round(active / finished, 4) if finished else 0.0,
            "rollbacks": self._rollback.get_rollback_stats(),
        }

    async def shutdown(self) -> None:
        """Abort in-flight rollouts, stop monitoring and drain rollbacks."""
        for deployment_id in list(self._rollouts):
            await self.abort_rollout(deployment_id, initiator="shutdown")
        await self._monitor.shutdown()
        pending = list(self._rollback_tasks.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Orchestrator shut down")
