"""Deployment Rollout & Rollback Engine — Records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .config import (
    AlertSeverity,
    AlertType,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    RollbackStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class DeploymentConfiguration:
    """Replica count and per-replica resource shape."""

    replicas: int = 1
    cpu: str = "500m"
    memory: str = "1Gi"
    gpu: int = 0


@dataclass
class SLOTargets:
    """Service-level objectives; availability and error rate in percent."""

    availability: float = 99.9
    latency_p95: float = 500.0
    latency_p99: float = 1000.0
    error_rate: float = 1.0


@dataclass
class DriftThresholds:
    """Unitless drift scores above which an alert is raised."""

    input_drift: float = 0.1
    output_drift: float = 0.1
    performance_drift: float = 0.05


@dataclass
class Deployment:
    """One attempt to make a model version live in an environment."""

    deployment_id: str = field(default_factory=_new_id)
    model_version_id: str = ""
    environment: Environment = Environment.STAGING
    strategy: DeploymentStrategy = DeploymentStrategy.ROLLING
    status: DeploymentStatus = DeploymentStatus.PENDING
    configuration: DeploymentConfiguration = field(
        default_factory=DeploymentConfiguration
    )
    slo_targets: SLOTargets = field(default_factory=SLOTargets)
    drift_thresholds: DriftThresholds = field(default_factory=DriftThresholds)
    deployed_by: str = "system"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class CreateDeploymentRequest:
    """Input to ``DeploymentOrchestrator.start_rollout``.

    Strategy and environment accept either the enum or its string value;
    the orchestrator validates and normalises them.
    """

    model_version_id: str
    environment: object = Environment.STAGING
    strategy: object = DeploymentStrategy.ROLLING
    configuration: DeploymentConfiguration = field(
        default_factory=DeploymentConfiguration
    )
    slo_targets: SLOTargets = field(default_factory=SLOTargets)
    drift_thresholds: DriftThresholds = field(default_factory=DriftThresholds)


@dataclass
class TrafficSplit:
    """A point-in-time routing weight assigned to one deployment."""

    split_id: str = field(default_factory=_new_id)
    deployment_id: str = ""
    percentage: int = 0
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


@dataclass
class DeploymentMetrics:
    """One aggregated sample of a deployment's live behaviour."""

    deployment_id: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    availability: float = 100.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    error_rate: float = 0.0
    input_drift: Optional[float] = None
    output_drift: Optional[float] = None
    performance_drift: Optional[float] = None
    request_count: int = 0
    metrics_id: str = field(default_factory=_new_id)


@dataclass
class DeploymentAlert:
    """A detected threshold violation."""

    alert_id: str = field(default_factory=_new_id)
    deployment_id: str = ""
    alert_type: AlertType = AlertType.SLO_BREACH
    severity: AlertSeverity = AlertSeverity.WARNING
    message: str = ""
    threshold: float = 0.0
    actual_value: float = 0.0
    triggered_at: datetime = field(default_factory=utcnow)
    acknowledged: bool = False
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


@dataclass
class CreateRollbackRequest:
    """Operator (or system) request to roll a deployment back."""

    reason: str
    target_version_id: Optional[str] = None


@dataclass
class RollbackOperation:
    """Record of a rollback attempt."""

    rollback_id: str = field(default_factory=_new_id)
    deployment_id: str = ""
    target_deployment_id: str = ""
    target_version_id: str = ""
    reason: str = ""
    initiated_by: str = "system"
    status: RollbackStatus = RollbackStatus.PENDING
    initiated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


@dataclass
class HealthSummary:
    """Derived health view of a deployment; recomputed on every read."""

    deployment_id: str
    status: DeploymentStatus
    health_score: int
    active_alerts: int
    critical_alerts: int
    last_metrics_timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "health_score": self.health_score,
            "active_alerts": self.active_alerts,
            "critical_alerts": self.critical_alerts,
            "last_metrics_timestamp": (
                self.last_metrics_timestamp.isoformat()
                if self.last_metrics_timestamp
                else None
            ),
        }
