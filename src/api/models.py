"""API Request/Response Models.

Pydantic schemas for the deployment endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.deployment import (
    CreateDeploymentRequest,
    Deployment,
    DeploymentAlert,
    DeploymentConfiguration,
    DeploymentMetrics,
    DriftThresholds,
    HealthSummary,
    RollbackOperation,
    SLOTargets,
    TrafficSplit,
)


# ─── Common ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """Service liveness."""

    status: str = "ok"
    version: str = "1.0.0"
    timestamp: datetime
    monitored_deployments: int = 0
    running_rollouts: int = 0


class MessageResponse(BaseModel):
    message: str


# ─── Deployments ─────────────────────────────────────────────────────────


class ConfigurationModel(BaseModel):
    replicas: int = Field(default=1, ge=1)
    cpu: str = "500m"
    memory: str = "1Gi"
    gpu: int = Field(default=0, ge=0)


class SLOTargetsModel(BaseModel):
    availability: float = Field(default=99.9, ge=0, le=100)
    latency_p95: float = Field(default=500.0, gt=0)
    latency_p99: float = Field(default=1000.0, gt=0)
    error_rate: float = Field(default=1.0, ge=0, le=100)


class DriftThresholdsModel(BaseModel):
    input_drift: float = Field(default=0.1, ge=0)
    output_drift: float = Field(default=0.1, ge=0)
    performance_drift: float = Field(default=0.05, ge=0)


class CreateDeploymentBody(BaseModel):
    """Rollout request. ``strategy`` and ``environment`` are validated by the engine."""

    model_version_id: str = Field(..., min_length=1)
    environment: str = "staging"
    strategy: str = "rolling"
    configuration: ConfigurationModel = Field(default_factory=ConfigurationModel)
    slo_targets: SLOTargetsModel = Field(default_factory=SLOTargetsModel)
    drift_thresholds: DriftThresholdsModel = Field(default_factory=DriftThresholdsModel)

    model_config = {"protected_namespaces": ()}

    def to_domain(self) -> CreateDeploymentRequest:
        return CreateDeploymentRequest(
            model_version_id=self.model_version_id,
            environment=self.environment,
            strategy=self.strategy,
            configuration=DeploymentConfiguration(**self.configuration.model_dump()),
            slo_targets=SLOTargets(**self.slo_targets.model_dump()),
            drift_thresholds=DriftThresholds(**self.drift_thresholds.model_dump()),
        )


class DeploymentResponse(BaseModel):
    deployment_id: str
    model_version_id: str
    environment: str
    strategy: str
    status: str
    configuration: ConfigurationModel
    slo_targets: SLOTargetsModel
    drift_thresholds: DriftThresholdsModel
    deployed_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"protected_namespaces": ()}

    @classmethod
    def from_domain(cls, d: Deployment) -> "DeploymentResponse":
        return cls(
            deployment_id=d.deployment_id,
            model_version_id=d.model_version_id,
            environment=d.environment.value,
            strategy=d.strategy.value,
            status=d.status.value,
            configuration=ConfigurationModel(**vars(d.configuration)),
            slo_targets=SLOTargetsModel(**vars(d.slo_targets)),
            drift_thresholds=DriftThresholdsModel(**vars(d.drift_thresholds)),
            deployed_by=d.deployed_by,
            created_at=d.created_at,
            updated_at=d.updated_at,
        )


class HealthSummaryResponse(BaseModel):
    deployment_id: str
    status: str
    health_score: int = Field(ge=0, le=100)
    active_alerts: int
    critical_alerts: int
    last_metrics_timestamp: Optional[datetime] = None

    @classmethod
    def from_domain(cls, h: HealthSummary) -> "HealthSummaryResponse":
        return cls(
            deployment_id=h.deployment_id,
            status=h.status.value,
            health_score=h.health_score,
            active_alerts=h.active_alerts,
            critical_alerts=h.critical_alerts,
            last_metrics_timestamp=h.last_metrics_timestamp,
        )


class TrafficSplitResponse(BaseModel):
    split_id: str
    deployment_id: str
    percentage: int
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, s: TrafficSplit) -> "TrafficSplitResponse":
        return cls(**vars(s))


# ─── Metrics & Alerts ────────────────────────────────────────────────────


class MetricsBody(BaseModel):
    timestamp: Optional[datetime] = None
    availability: float = Field(default=100.0, ge=0, le=100)
    latency_p95: float = Field(default=0.0, ge=0)
    latency_p99: float = Field(default=0.0, ge=0)
    error_rate: float = Field(default=0.0, ge=0, le=100)
    input_drift: Optional[float] = Field(default=None, ge=0)
    output_drift: Optional[float] = Field(default=None, ge=0)
    performance_drift: Optional[float] = Field(default=None, ge=0)
    request_count: int = Field(default=0, ge=0)

    def to_domain(self, deployment_id: str) -> DeploymentMetrics:
        data = self.model_dump(exclude={"timestamp"})
        metrics = DeploymentMetrics(deployment_id=deployment_id, **data)
        if self.timestamp is not None:
            metrics.timestamp = self.timestamp
        return metrics


class MetricsResponse(BaseModel):
    metrics_id: str
    deployment_id: str
    timestamp: datetime
    availability: float
    latency_p95: float
    latency_p99: float
    error_rate: float
    input_drift: Optional[float] = None
    output_drift: Optional[float] = None
    performance_drift: Optional[float] = None
    request_count: int

    @classmethod
    def from_domain(cls, m: DeploymentMetrics) -> "MetricsResponse":
        return cls(**vars(m))


class AlertResponse(BaseModel):
    alert_id: str
    deployment_id: str
    alert_type: str
    severity: str
    message: str
    threshold: float
    actual_value: float
    triggered_at: datetime
    acknowledged: bool
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, a: DeploymentAlert) -> "AlertResponse":
        return cls(
            alert_id=a.alert_id,
            deployment_id=a.deployment_id,
            alert_type=a.alert_type.value,
            severity=a.severity.value,
            message=a.message,
            threshold=a.threshold,
            actual_value=a.actual_value,
            triggered_at=a.triggered_at,
            acknowledged=a.acknowledged,
            resolved_at=a.resolved_at,
        )


# ─── Rollback ────────────────────────────────────────────────────────────


class RollbackBody(BaseModel):
    reason: str = Field(..., min_length=1)
    target_version_id: Optional[str] = None


class RollbackResponse(BaseModel):
    rollback_id: str
    deployment_id: str
    target_deployment_id: str
    target_version_id: str
    reason: str
    initiated_by: str
    status: str
    initiated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_domain(cls, op: RollbackOperation) -> "RollbackResponse":
        return cls(
            rollback_id=op.rollback_id,
            deployment_id=op.deployment_id,
            target_deployment_id=op.target_deployment_id,
            target_version_id=op.target_version_id,
            reason=op.reason,
            initiated_by=op.initiated_by,
            status=op.status.value,
            initiated_at=op.initiated_at,
            started_at=op.started_at,
            completed_at=op.completed_at,
            error_message=op.error_message,
        )


class MonitoringResponse(BaseModel):
    deployment_id: str
    monitoring: bool
    changed: bool


class AbortResponse(BaseModel):
    deployment_id: str
    aborted: bool
