"""Deployment Rollout & Rollback Engine — Rollback Coordinator."""

import logging
from typing import Callable, List, Optional

from src.logging_config import DeploymentContext, log_duration

from .config import (
    DeploymentStatus,
    RollbackConfig,
    RollbackStatus,
    TERMINAL_ROLLBACK_STATUSES,
    can_transition,
)
from .exceptions import (
    DeploymentNotFoundError,
    HealthCheckTimeoutError,
    NoRollbackTargetError,
    RollbackError,
)
from .gate import HealthCheckGate
from .models import CreateRollbackRequest, Deployment, RollbackOperation
from .store import DeploymentFilter, DeploymentStore, transition_status
from .traffic import TrafficManager

logger = logging.getLogger(__name__)

ROLLBACK_SOURCE_STATUSES = (DeploymentStatus.ACTIVE, DeploymentStatus.FAILED)


class RollbackCoordinator:
    """Moves traffic from a bad deployment back to a prior ACTIVE one.

    A rollback is recorded as a ``RollbackOperation`` before anything is
    touched. Operations are created PENDING and can be cancelled until they
    start; once IN_PROGRESS they run to COMPLETED or FAILED. With a health
    gate, the target must pass its health probe after traffic moves before
    the operation counts as COMPLETED.
    """

    def __init__(
        self,
        store: DeploymentStore,
        traffic: TrafficManager,
        config: Optional[RollbackConfig] = None,
        stop_monitoring: Optional[Callable[[str], object]] = None,
        gate: Optional[HealthCheckGate] = None,
    ):
        self._store = store
        self._traffic = traffic
        self._config = config or RollbackConfig()
        self._stop_monitoring = stop_monitoring
        self._gate = gate

    @property
    def config(self) -> RollbackConfig:
        return self._config

    def set_monitoring_stopper(self, stop_monitoring: Optional[Callable[[str], object]]) -> None:
        self._stop_monitoring = stop_monitoring

    # ── Targets ──────────────────────────────────────────────────────

    def _candidates(self, source: Deployment) -> List[Deployment]:
        active = self._store.list_deployments(
            DeploymentFilter(environment=source.environment, status=DeploymentStatus.ACTIVE)
        )
        return [d for d in active if d.deployment_id != source.deployment_id]

    def get_one_click_options(self, deployment_id: str) -> List[Deployment]:
        """Prior ACTIVE deployments in the same environment, newest first."""
        source = self._store.get_deployment(deployment_id)
        if source is None:
            raise DeploymentNotFoundError(deployment_id)
        return self._candidates(source)[: self._config.max_rollback_options]

    def find_target(
        self, source: Deployment, target_version_id: Optional[str] = None
    ) -> Deployment:
        """Most recent rollback candidate, optionally pinned to a version.

        Raises:
            NoRollbackTargetError: no candidate exists.
        """
        candidates = self._candidates(source)
        if target_version_id:
            candidates = [c for c in candidates if c.model_version_id == target_version_id]
        if not candidates:
            raise NoRollbackTargetError(source.deployment_id)
        return candidates[0]

    def _validate_source(self, deployment_id: str) -> Deployment:
        source = self._store.get_deployment(deployment_id)
        if source is None:
            raise DeploymentNotFoundError(deployment_id)
        if source.status == DeploymentStatus.ROLLING_BACK:
            raise RollbackError(
                f"Deployment {deployment_id} is already rolling back", deployment_id
            )
        if source.status not in ROLLBACK_SOURCE_STATUSES:
            raise RollbackError(
                f"Cannot roll back deployment in status {source.status.value}",
                deployment_id,
            )
        return source

    # ── Operations ───────────────────────────────────────────────────

    def create_operation(
        self,
        deployment_id: str,
        request: CreateRollbackRequest,
        initiator: str = "system",
    ) -> RollbackOperation:
        """Validate and record a PENDING rollback without running it.

        Raises:
            DeploymentNotFoundError: unknown source deployment.
            RollbackError: source is already rolling back or not rollbackable.
            NoRollbackTargetError: no prior ACTIVE deployment to return to.
        """
        source = self._validate_source(deployment_id)
        target = self.find_target(source, request.target_version_id)
        operation = self._store.create_rollback_operation(
            RollbackOperation(
                deployment_id=deployment_id,
                target_deployment_id=target.deployment_id,
                target_version_id=target.model_version_id,
                reason=request.reason,
                initiated_by=initiator,
            )
        )
        logger.warning(
            "Rollback %s created for %s -> %s (version %s) by %s: %s",
            operation.rollback_id,
            deployment_id,
            target.deployment_id,
            target.model_version_id,
            initiator,
            request.reason,
        )
        return operation

    @log_duration("rollback")
    async def run_operation(self, rollback_id: str) -> RollbackOperation:
        """Execute a PENDING operation; anything else is returned untouched.

        Raises:
            RollbackError: the rollback started but did not complete.
        """
        operation = self._store.get_rollback_operation(rollback_id)
        if operation is None:
            raise RollbackError(f"Rollback {rollback_id} not found")
        if operation.status != RollbackStatus.PENDING:
            logger.info(
                "Skipping rollback %s in status %s", rollback_id, operation.status.value
            )
            return operation

        self._store.update_rollback_operation(rollback_id, RollbackStatus.IN_PROGRESS)
        deployment_id = operation.deployment_id
        with DeploymentContext(deployment_id=deployment_id, operation="rollback",
                               initiator=operation.initiated_by):
            try:
                self._validate_source(deployment_id)
                if self._stop_monitoring is not None:
                    self._stop_monitoring(deployment_id)
                transition_status(self._store, deployment_id, DeploymentStatus.ROLLING_BACK)
                self._traffic.shift_traffic(operation.target_deployment_id, 100)
                await self._verify_target(operation)
                completed = self._store.update_rollback_operation(
                    rollback_id, RollbackStatus.COMPLETED
                )
                transition_status(self._store, deployment_id, DeploymentStatus.ROLLED_BACK)
            except Exception as exc:
                self._store.update_rollback_operation(
                    rollback_id, RollbackStatus.FAILED, error_message=str(exc)
                )
                source = self._store.get_deployment(deployment_id)
                if source is not None and can_transition(source.status, DeploymentStatus.FAILED):
                    self._store.update_deployment_status(deployment_id, DeploymentStatus.FAILED)
                logger.error("Rollback %s failed: %s", rollback_id, exc)
                raise RollbackError(
                    f"Rollback {rollback_id} failed: {exc}", deployment_id
                ) from exc

        logger.info(
            "Rollback %s completed: traffic on %s (version %s)",
            rollback_id,
            operation.target_deployment_id,
            operation.target_version_id,
        )
        return completed

    async def _verify_target(self, operation: RollbackOperation) -> None:
        if self._gate is None:
            return
        target = self._store.get_deployment(operation.target_deployment_id)
        if target is None:
            raise DeploymentNotFoundError(operation.target_deployment_id)
        try:
            await self._gate.wait_until_healthy(target)
        except HealthCheckTimeoutError as exc:
            raise RollbackError(
                f"Rollback verification failed: {exc}", operation.deployment_id
            ) from exc

    async def execute_rollback(
        self,
        deployment_id: str,
        request: CreateRollbackRequest,
        initiator: str = "system",
    ) -> RollbackOperation:
        """Create a rollback and run it to completion."""
        operation = self.create_operation(deployment_id, request, initiator)
        return await self.run_operation(operation.rollback_id)

    def cancel_rollback(self, rollback_id: str) -> bool:
        """Cancel a rollback that has not started yet."""
        operation = self._store.get_rollback_operation(rollback_id)
        if operation is None or operation.status != RollbackStatus.PENDING:
            return False
        self._store.update_rollback_operation(rollback_id, RollbackStatus.CANCELLED)
        logger.info("Rollback %s cancelled", rollback_id)
        return True

    # ── Queries ──────────────────────────────────────────────────────

    def get_rollback(self, rollback_id: str) -> Optional[RollbackOperation]:
        return self._store.get_rollback_operation(rollback_id)

    def list_rollbacks(self, deployment_id: Optional[str] = None) -> List[RollbackOperation]:
        return self._store.list_rollback_operations(deployment_id)

    def get_rollback_stats(self) -> dict:
        """Return aggregate rollback statistics."""
        operations = self._store.list_rollback_operations()
        completed = [o for o in operations if o.status == RollbackStatus.COMPLETED]
        durations = [
            (o.completed_at - (o.started_at or o.initiated_at)).total_seconds()
            for o in completed
            if o.completed_at is not None
        ]
        return {
            "total": len(operations),
            "pending": sum(1 for o in operations if o.status == RollbackStatus.PENDING),
            "in_progress": sum(
                1 for o in operations if o.status == RollbackStatus.IN_PROGRESS
            ),
            "completed": len(completed),
            "failed": sum(1 for o in operations if o.status == RollbackStatus.FAILED),
            "cancelled": sum(1 for o in operations if o.status == RollbackStatus.CANCELLED),
            "terminal": sum(1 for o in operations if o.status in TERMINAL_ROLLBACK_STATUSES),
            "avg_duration_seconds": (
                round(sum(durations) / len(durations), 3) if durations else 0.0
            ),
        }
