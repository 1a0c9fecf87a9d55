"""Deployment Rollout & Rollback Engine — SQL Store.

``DeploymentStore`` over the tables in ``src.db.models``. Each call runs in
its own transaction. Datetimes are written as naive UTC and returned
timezone-aware.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from src.db.engine import get_sync_session_factory
from src.db.models import (
    DeploymentAlertRecord,
    DeploymentMetricsRecord,
    DeploymentRecord,
    RollbackOperationRecord,
    TrafficSplitRecord,
)

from .config import (
    AlertSeverity,
    AlertType,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    RollbackStatus,
    TERMINAL_ROLLBACK_STATUSES,
)
from .models import (
    Deployment,
    DeploymentAlert,
    DeploymentConfiguration,
    DeploymentMetrics,
    DriftThresholds,
    RollbackOperation,
    SLOTargets,
    TrafficSplit,
    utcnow,
)
from .store import DeploymentFilter

logger = logging.getLogger(__name__)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


# ── Row conversion ───────────────────────────────────────────────────


def _deployment_from_row(r: DeploymentRecord) -> Deployment:
    return Deployment(
        deployment_id=r.deployment_id,
        model_version_id=r.model_version_id,
        environment=Environment(r.environment),
        strategy=DeploymentStrategy(r.strategy),
        status=DeploymentStatus(r.status),
        configuration=DeploymentConfiguration(**(r.configuration or {})),
        slo_targets=SLOTargets(**(r.slo_targets or {})),
        drift_thresholds=DriftThresholds(**(r.drift_thresholds or {})),
        deployed_by=r.deployed_by,
        created_at=_from_db(r.created_at),
        updated_at=_from_db(r.updated_at),
    )


def _split_from_row(r: TrafficSplitRecord) -> TrafficSplit:
    return TrafficSplit(
        split_id=r.split_id,
        deployment_id=r.deployment_id,
        percentage=r.percentage,
        created_at=_from_db(r.created_at),
        completed_at=_from_db(r.completed_at),
    )


def _metrics_from_row(r: DeploymentMetricsRecord) -> DeploymentMetrics:
    return DeploymentMetrics(
        metrics_id=r.metrics_id,
        deployment_id=r.deployment_id,
        timestamp=_from_db(r.timestamp),
        availability=r.availability,
        latency_p95=r.latency_p95,
        latency_p99=r.latency_p99,
        error_rate=r.error_rate,
        input_drift=r.input_drift,
        output_drift=r.output_drift,
        performance_drift=r.performance_drift,
        request_count=r.request_count,
    )


def _alert_from_row(r: DeploymentAlertRecord) -> DeploymentAlert:
    return DeploymentAlert(
        alert_id=r.alert_id,
        deployment_id=r.deployment_id,
        alert_type=AlertType(r.alert_type),
        severity=AlertSeverity(r.severity),
        message=r.message,
        threshold=r.threshold,
        actual_value=r.actual_value,
        triggered_at=_from_db(r.triggered_at),
        acknowledged=bool(r.acknowledged),
        resolved_at=_from_db(r.resolved_at),
    )


def _rollback_from_row(r: RollbackOperationRecord) -> RollbackOperation:
    return RollbackOperation(
        rollback_id=r.rollback_id,
        deployment_id=r.deployment_id,
        target_deployment_id=r.target_deployment_id,
        target_version_id=r.target_version_id,
        reason=r.reason,
        initiated_by=r.initiated_by,
        status=RollbackStatus(r.status),
        initiated_at=_from_db(r.initiated_at),
        started_at=_from_db(r.started_at),
        completed_at=_from_db(r.completed_at),
        error_message=r.error_message,
    )


class SqlDeploymentStore:
    """SQLAlchemy-backed store.

    Args:
        session_factory: Zero-argument callable returning a ``Session``;
            defaults to the settings-configured factory.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_sync_session_factory()

    def _session(self) -> Session:
        return self._session_factory()

    # ── Deployments ──────────────────────────────────────────────────

    def create_deployment(self, deployment: Deployment) -> Deployment:
        with self._session() as session, session.begin():
            rec = DeploymentRecord(
                deployment_id=deployment.deployment_id,
                model_version_id=deployment.model_version_id,
                environment=deployment.environment.value,
                strategy=deployment.strategy.value,
                status=deployment.status.value,
                configuration=asdict(deployment.configuration),
                slo_targets=asdict(deployment.slo_targets),
                drift_thresholds=asdict(deployment.drift_thresholds),
                deployed_by=deployment.deployed_by,
                created_at=_to_db(deployment.created_at),
                updated_at=_to_db(deployment.updated_at),
            )
            session.add(rec)
            session.flush()
            return _deployment_from_row(rec)

    def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        with self._session() as session:
            rec = (
                session.query(DeploymentRecord)
                .filter(DeploymentRecord.deployment_id == deployment_id)
                .one_or_none()
            )
            return _deployment_from_row(rec) if rec else None

    def update_deployment_status(
        self, deployment_id: str, status: DeploymentStatus
    ) -> Optional[Deployment]:
        with self._session() as session, session.begin():
            rec = (
                session.query(DeploymentRecord)
                .filter(DeploymentRecord.deployment_id == deployment_id)
                .one_or_none()
            )
            if rec is None:
                return None
            rec.status = status.value
            rec.updated_at = _to_db(utcnow())
            session.flush()
            return _deployment_from_row(rec)

    def list_deployments(self, query: DeploymentFilter) -> List[Deployment]:
        with self._session() as session:
            q = session.query(DeploymentRecord)
            if query.environment is not None:
                q = q.filter(DeploymentRecord.environment == query.environment.value)
            if query.status is not None:
                q = q.filter(DeploymentRecord.status == query.status.value)
            if query.model_version_id is not None:
                q = q.filter(DeploymentRecord.model_version_id == query.model_version_id)
            if query.deployed_by is not None:
                q = q.filter(DeploymentRecord.deployed_by == query.deployed_by)
            q = q.order_by(DeploymentRecord.created_at.desc(), DeploymentRecord.id.desc())
            if query.offset:
                q = q.offset(query.offset)
            if query.limit is not None:
                q = q.limit(query.limit)
            return [_deployment_from_row(r) for r in q.all()]

    # ── Traffic ──────────────────────────────────────────────────────

    def create_traffic_split(self, deployment_id: str, percentage: int) -> TrafficSplit:
        split = TrafficSplit(deployment_id=deployment_id, percentage=percentage)
        with self._session() as session, session.begin():
            rec = TrafficSplitRecord(
                split_id=split.split_id,
                deployment_id=deployment_id,
                percentage=percentage,
                created_at=_to_db(split.created_at),
            )
            session.add(rec)
            session.flush()
            return _split_from_row(rec)

    def list_traffic_splits(self, deployment_id: str) -> List[TrafficSplit]:
        with self._session() as session:
            rows = (
                session.query(TrafficSplitRecord)
                .filter(TrafficSplitRecord.deployment_id == deployment_id)
                .order_by(TrafficSplitRecord.created_at.asc())
                .all()
            )
            return [_split_from_row(r) for r in rows]

    def complete_traffic_split(self, split_id: str) -> Optional[TrafficSplit]:
        with self._session() as session, session.begin():
            rec = (
                session.query(TrafficSplitRecord)
                .filter(TrafficSplitRecord.split_id == split_id)
                .first()
            )
            if rec is None:
                return None
            if rec.completed_at is None:
                rec.completed_at = _to_db(utcnow())
            session.flush()
            return _split_from_row(rec)

    # ── Metrics ──────────────────────────────────────────────────────

    def append_metrics(self, metrics: DeploymentMetrics) -> DeploymentMetrics:
        with self._session() as session, session.begin():
            rec = DeploymentMetricsRecord(
                metrics_id=metrics.metrics_id,
                deployment_id=metrics.deployment_id,
                timestamp=_to_db(metrics.timestamp),
                availability=metrics.availability,
                latency_p95=metrics.latency_p95,
                latency_p99=metrics.latency_p99,
                error_rate=metrics.error_rate,
                input_drift=metrics.input_drift,
                output_drift=metrics.output_drift,
                performance_drift=metrics.performance_drift,
                request_count=metrics.request_count,
            )
            session.add(rec)
            session.flush()
            return _metrics_from_row(rec)

    def query_metrics(
        self, deployment_id: str, start: datetime, end: datetime
    ) -> List[DeploymentMetrics]:
        with self._session() as session:
            rows = (
                session.query(DeploymentMetricsRecord)
                .filter(
                    DeploymentMetricsRecord.deployment_id == deployment_id,
                    DeploymentMetricsRecord.timestamp >= _to_db(start),
                    DeploymentMetricsRecord.timestamp <= _to_db(end),
                )
                .order_by(DeploymentMetricsRecord.timestamp.asc())
                .all()
            )
            return [_metrics_from_row(r) for r in rows]

    # ── Alerts ───────────────────────────────────────────────────────

    def create_alert(self, alert: DeploymentAlert) -> DeploymentAlert:
        with self._session() as session, session.begin():
            rec = DeploymentAlertRecord(
                alert_id=alert.alert_id,
                deployment_id=alert.deployment_id,
                alert_type=alert.alert_type.value,
                severity=alert.severity.value,
                message=alert.message,
                threshold=alert.threshold,
                actual_value=alert.actual_value,
                triggered_at=_to_db(alert.triggered_at),
                acknowledged=alert.acknowledged,
                resolved_at=_to_db(alert.resolved_at),
            )
            session.add(rec)
            session.flush()
            return _alert_from_row(rec)

    def list_alerts(
        self, deployment_id: str, include_resolved: bool = False
    ) -> List[DeploymentAlert]:
        with self._session() as session:
            q = session.query(DeploymentAlertRecord).filter(
                DeploymentAlertRecord.deployment_id == deployment_id
            )
            if not include_resolved:
                q = q.filter(DeploymentAlertRecord.resolved_at.is_(None))
            rows = q.order_by(DeploymentAlertRecord.triggered_at.desc()).all()
            return [_alert_from_row(r) for r in rows]

    def _update_alert(self, alert_id: str, mutate) -> Optional[DeploymentAlert]:
        with self._session() as session, session.begin():
            rec = session.get(DeploymentAlertRecord, alert_id)
            if rec is None:
                return None
            mutate(rec)
            session.flush()
            return _alert_from_row(rec)

    def acknowledge_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        def ack(rec):
            rec.acknowledged = True

        return self._update_alert(alert_id, ack)

    def resolve_alert(self, alert_id: str) -> Optional[DeploymentAlert]:
        def resolve(rec):
            if rec.resolved_at is None:
                rec.resolved_at = _to_db(utcnow())

        return self._update_alert(alert_id, resolve)

    # ── Rollbacks ────────────────────────────────────────────────────

    def create_rollback_operation(self, operation: RollbackOperation) -> RollbackOperation:
        with self._session() as session, session.begin():
            rec = RollbackOperationRecord(
                rollback_id=operation.rollback_id,
                deployment_id=operation.deployment_id,
                target_deployment_id=operation.target_deployment_id,
                target_version_id=operation.target_version_id,
                reason=operation.reason,
                initiated_by=operation.initiated_by,
                status=operation.status.value,
                initiated_at=_to_db(operation.initiated_at),
                started_at=_to_db(operation.started_at),
                completed_at=_to_db(operation.completed_at),
                error_message=operation.error_message,
            )
            session.add(rec)
            session.flush()
            return _rollback_from_row(rec)

    def update_rollback_operation(
        self,
        rollback_id: str,
        status: RollbackStatus,
        error_message: Optional[str] = None,
    ) -> Optional[RollbackOperation]:
        with self._session() as session, session.begin():
            rec = session.get(RollbackOperationRecord, rollback_id)
            if rec is None:
                return None
            rec.status = status.value
            if error_message is not None:
                rec.error_message = error_message
            now = _to_db(utcnow())
            if status == RollbackStatus.IN_PROGRESS:
                rec.started_at = now
            elif status in TERMINAL_ROLLBACK_STATUSES:
                rec.completed_at = now
            session.flush()
            return _rollback_from_row(rec)

    def get_rollback_operation(self, rollback_id: str) -> Optional[RollbackOperation]:
        with self._session() as session:
            rec = session.get(RollbackOperationRecord, rollback_id)
            return _rollback_from_row(rec) if rec else None

    def list_rollback_operations(
        self, deployment_id: Optional[str] = None
    ) -> List[RollbackOperation]:
        with self._session() as session:
            q = session.query(RollbackOperationRecord)
            if deployment_id is not None:
                q = q.filter(RollbackOperationRecord.deployment_id == deployment_id)
            rows = q.order_by(RollbackOperationRecord.initiated_at.desc()).all()
            return [_rollback_from_row(r) for r in rows]
