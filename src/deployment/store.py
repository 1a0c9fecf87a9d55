"""Deployment Rollout & Rollback Engine — Store Interface.

``DeploymentStore`` is the persistence boundary of the engine. Every state
transition, traffic split, metric sample, alert and rollback record goes
through it. ``InMemoryDeploymentStore`` is the default implementation;
``SqlDeploymentStore`` (``sql_store.py``) persists to a database.
"""

import copy
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from .config import DeploymentStatus, Environment, RollbackStatus, can_transition
from .exceptions import DeploymentNotFoundError, InvalidTransitionError
from .models import (
    Deployment,
    DeploymentAlert,
    DeploymentMetrics,
    RollbackOperation,
    TrafficSplit,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class DeploymentFilter:
    """Query parameters for ``list_deployments``.

    Results are always ordered newest first by creation time; deployments
    created at the same instant are ordered by insertion, later first.
    """

    environment: Optional[Environment] = None
    status: Optional[DeploymentStatus] = None
    model_version_id: Optional[str] = None
    deployed_by: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


class DeploymentStore(Protocol):
    """Persistence operations consumed by the engine."""

    def create_deployment(self, deployment: Deployment) -> Deployment:
        ...

    def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        ...

    def update_deployment_status(
        self, deployment_id: str, status: DeploymentStatus
    ) -> Optional[Deployment]:
        ...

    def list_deployments(self, query: DeploymentFilter) -> List[Deployment]:
        ...

    def create_traffic_split(self, deployment_id: str, percentage: int) -> TrafficSplit:
        ...

    def list_traffic_splits(self, deployment_id: str) -> List[TrafficSplit]:
        ...

    def complete_traffic_split(self, split_id: str) -> Optional[TrafficSplit]:
        ...

    def append_metrics(self, metrics: DeploymentMetrics) -> DeploymentMetrics:
        ...

    def query_metrics(
        self, deployment_id: str, start: datetime, end: datetime
    ) -> List[DeploymentMetrics]:
        ...

    def create_alert(self, alert: DeploymentAlert) -> DeploymentAlert:
        ...

    def list_alerts(
        self, deployment_id: str, include_resolved: bool = False
    ) -> List[DeploymentAlert]:
        ...

    def acknowledge_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        ...

    def resolve_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        ...

    def create_rollback_operation(self, operation: RollbackOperation) -> RollbackOperation:
        ...

    def update_rollback_operation(
        self,
        rollback_id: str,
        status: RollbackStatus,
        error_message: Optional[str] = None,
    ) -> Optional[RollbackOperation]:
        ...

    def get_rollback_operation(self, rollback_id: str) -> Optional[RollbackOperation]:
        ...

    def list_rollback_operations(
        self, deployment_id: Optional[str] = None
    ) -> List[RollbackOperation]:
        ...


def transition_status(
    store: DeploymentStore, deployment_id: str, target: DeploymentStatus
) -> Deployment:
    """Move a deployment to ``target`` if the lifecycle allows it.

    Raises:
        DeploymentNotFoundError: unknown deployment.
        InvalidTransitionError: the move is not in ``ALLOWED_TRANSITIONS``.
    """
    deployment = store.get_deployment(deployment_id)
    if deployment is None:
        raise DeploymentNotFoundError(deployment_id)
    if not can_transition(deployment.status, target):
        raise InvalidTransitionError(deployment_id, deployment.status, target)
    updated = store.update_deployment_status(deployment_id, target)
    logger.info(
        "Deployment %s: %s -> %s",
        deployment_id,
        deployment.status.value,
        target.value,
    )
    return updated


class InMemoryDeploymentStore:
    """Thread-safe in-process store.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self):
        self._deployments: Dict[str, Deployment] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()
        self._splits: List[TrafficSplit] = []
        self._metrics: List[DeploymentMetrics] = []
        self._alerts: Dict[str, DeploymentAlert] = {}
        self._rollbacks: Dict[str, RollbackOperation] = {}
        self._lock = threading.Lock()

    # ── Deployments ──────────────────────────────────────────────────

    def create_deployment(self, deployment: Deployment) -> Deployment:
        with self._lock:
            stored = copy.deepcopy(deployment)
            self._deployments[stored.deployment_id] = stored
            self._sequence[stored.deployment_id] = next(self._counter)
            return copy.deepcopy(stored)

    def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        with self._lock:
            deployment = self._deployments.get(deployment_id)
            return copy.deepcopy(deployment) if deployment else None

    def update_deployment_status(
        self, deployment_id: str, status: DeploymentStatus
    ) -> Optional[Deployment]:
        with self._lock:
            deployment = self._deployments.get(deployment_id)
            if deployment is None:
                return None
            deployment.status = status
            deployment.updated_at = utcnow()
            return copy.deepcopy(deployment)

    def list_deployments(self, query: DeploymentFilter) -> List[Deployment]:
        with self._lock:
            deployments = list(self._deployments.values())
            if query.environment is not None:
                deployments = [d for d in deployments if d.environment == query.environment]
            if query.status is not None:
                deployments = [d for d in deployments if d.status == query.status]
            if query.model_version_id is not None:
                deployments = [
                    d for d in deployments if d.model_version_id == query.model_version_id
                ]
            if query.deployed_by is not None:
                deployments = [d for d in deployments if d.deployed_by == query.deployed_by]
            deployments.sort(
                key=lambda d: (d.created_at, self._sequence[d.deployment_id]),
                reverse=True,
            )
            deployments = deployments[query.offset:]
            if query.limit is not None:
                deployments = deployments[: query.limit]
            return [copy.deepcopy(d) for d in deployments]

    # ── Traffic ──────────────────────────────────────────────────────

    def create_traffic_split(self, deployment_id: str, percentage: int) -> TrafficSplit:
        with self._lock:
            split = TrafficSplit(deployment_id=deployment_id, percentage=percentage)
            self._splits.append(split)
            return copy.deepcopy(split)

    def list_traffic_splits(self, deployment_id: str) -> List[TrafficSplit]:
        """Return the deployment's splits in creation order."""
        with self._lock:
            return [
                copy.deepcopy(s) for s in self._splits if s.deployment_id == deployment_id
            ]

    def complete_traffic_split(self, split_id: str) -> Optional[TrafficSplit]:
        """Stamp ``completed_at`` on a split; already-completed splits keep theirs."""
        with self._lock:
            for split in self._splits:
                if split.split_id == split_id:
                    if split.completed_at is None:
                        split.completed_at = utcnow()
                    return copy.deepcopy(split)
            return None

    # ── Metrics ──────────────────────────────────────────────────────

    def append_metrics(self, metrics: DeploymentMetrics) -> DeploymentMetrics:
        with self._lock:
            stored = copy.deepcopy(metrics)
            self._metrics.append(stored)
            return copy.deepcopy(stored)

    def query_metrics(
        self, deployment_id: str, start: datetime, end: datetime
    ) -> List[DeploymentMetrics]:
        """Return samples with ``start <= timestamp <= end``, oldest first."""
        with self._lock:
            samples = [
                m
                for m in self._metrics
                if m.deployment_id == deployment_id and start <= m.timestamp <= end
            ]
            samples.sort(key=lambda m: m.timestamp)
            return [copy.deepcopy(m) for m in samples]

    # ── Alerts ───────────────────────────────────────────────────────

    def create_alert(self, alert: DeploymentAlert) -> DeploymentAlert:
        with self._lock:
            stored = copy.deepcopy(alert)
            self._alerts[stored.alert_id] = stored
            return copy.deepcopy(stored)

    def list_alerts(
        self, deployment_id: str, include_resolved: bool = False
    ) -> List[DeploymentAlert]:
        """Return the deployment's alerts, newest first."""
        with self._lock:
            alerts = [a for a in self._alerts.values() if a.deployment_id == deployment_id]
            if not include_resolved:
                alerts = [a for a in alerts if a.resolved_at is None]
            alerts.sort(key=lambda a: a.triggered_at, reverse=True)
            return [copy.deepcopy(a) for a in alerts]

    def acknowledge_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            alert.acknowledged = True
            return copy.deepcopy(alert)

    def resolve_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            if alert.resolved_at is None:
                alert.resolved_at = utcnow()
            return copy.deepcopy(alert)

    # ── Rollbacks ────────────────────────────────────────────────────

    def create_rollback_operation(self, operation: RollbackOperation) -> RollbackOperation:
        with self._lock:
            stored = copy.deepcopy(operation)
            self._rollbacks[stored.rollback_id] = stored
            return copy.deepcopy(stored)

    def update_rollback_operation(
        self,
        rollback_id: str,
        status: RollbackStatus,
        error_message: Optional[str] = None,
    ) -> Optional[RollbackOperation]:
        with self._lock:
            operation = self._rollbacks.get(rollback_id)
            if operation is None:
                return None
            operation.status = status
            if error_message is not None:
                operation.error_message = error_message
            now = utcnow()
            if status == RollbackStatus.IN_PROGRESS:
                operation.started_at = now
            elif status in (
                RollbackStatus.COMPLETED,
                RollbackStatus.FAILED,
                RollbackStatus.CANCELLED,
            ):
                operation.completed_at = now
            return copy.deepcopy(operation)

    def get_rollback_operation(self, rollback_id: str) -> Optional[RollbackOperation]:
        with self._lock:
            operation = self._rollbacks.get(rollback_id)
            return copy.deepcopy(operation) if operation else None

    def list_rollback_operations(
        self, deployment_id: Optional[str] = None
    ) -> List[RollbackOperation]:
        """Return rollback records, newest first."""
        with self._lock:
            operations = list(self._rollbacks.values())
            if deployment_id is not None:
                operations = [o for o in operations if o.deployment_id == deployment_id]
            operations.sort(key=lambda o: o.initiated_at, reverse=True)
            return [copy.deepcopy(o) for o in operations]

    def reset(self) -> None:
        """Clear every record (for testing)."""
        with self._lock:
            self._deployments.clear()
            self._sequence.clear()
            self._splits.clear()
            self._metrics.clear()
            self._alerts.clear()
            self._rollbacks.clear()
