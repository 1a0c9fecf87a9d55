"""SQLAlchemy ORM models for the rollout engine.

Tables:
- deployments: one row per rollout attempt of a model version
- traffic_splits: routing weight history per deployment
- deployment_metrics: live health samples (SLO and drift inputs)
- deployment_alerts: threshold violations raised by the health monitor
- rollback_operations: rollback audit trail

Enum-valued columns hold the enum's string value. Timestamps are stored as
naive UTC.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from src.db.base import Base


class DeploymentRecord(Base):
    """A rollout attempt of a model version into an environment."""

    __tablename__ = "deployments"

    # Surrogate key doubles as the insertion-order tie-breaker for listings.
    id = Column(Integer, primary_key=True, autoincrement=True)
    deployment_id = Column(String(36), unique=True, nullable=False)
    model_version_id = Column(String(100), nullable=False, index=True)
    environment = Column(String(20), nullable=False, index=True)
    strategy = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    configuration = Column(JSON, nullable=False)
    slo_targets = Column(JSON, nullable=False)
    drift_thresholds = Column(JSON, nullable=False)
    deployed_by = Column(String(100), nullable=False, server_default="system")
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now())


class TrafficSplitRecord(Base):
    """Share of traffic assigned to a deployment at a point in time."""

    __tablename__ = "traffic_splits"

    split_id = Column(String(36), primary_key=True)
    deployment_id = Column(
        String(36), ForeignKey("deployments.deployment_id", ondelete="CASCADE"), nullable=False
    )
    percentage = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_traffic_splits_deployment_created", "deployment_id", "created_at"),
    )


class DeploymentMetricsRecord(Base):
    """One aggregated health sample."""

    __tablename__ = "deployment_metrics"

    metrics_id = Column(String(36), primary_key=True)
    deployment_id = Column(
        String(36), ForeignKey("deployments.deployment_id", ondelete="CASCADE"), nullable=False
    )
    timestamp = Column(DateTime, nullable=False)
    availability = Column(Float, nullable=False)
    latency_p95 = Column(Float, nullable=False)
    latency_p99 = Column(Float, nullable=False)
    error_rate = Column(Float, nullable=False)
    input_drift = Column(Float, nullable=True)
    output_drift = Column(Float, nullable=True)
    performance_drift = Column(Float, nullable=True)
    request_count = Column(Integer, nullable=False, server_default="0")

    __table_args__ = (
        Index("ix_deployment_metrics_deployment_time", "deployment_id", "timestamp"),
    )


class DeploymentAlertRecord(Base):
    """A threshold violation against a deployment."""

    __tablename__ = "deployment_alerts"

    alert_id = Column(String(36), primary_key=True)
    deployment_id = Column(
        String(36), ForeignKey("deployments.deployment_id", ondelete="CASCADE"), nullable=False
    )
    alert_type = Column(String(30), nullable=False)
    severity = Column(String(20), nullable=False, index=True)
    message = Column(Text, nullable=False)
    threshold = Column(Float, nullable=False)
    actual_value = Column(Float, nullable=False)
    triggered_at = Column(DateTime, nullable=False)
    acknowledged = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_deployment_alerts_deployment_triggered", "deployment_id", "triggered_at"),
    )


class RollbackOperationRecord(Base):
    """Audit record of a rollback attempt."""

    __tablename__ = "rollback_operations"

    rollback_id = Column(String(36), primary_key=True)
    deployment_id = Column(
        String(36), ForeignKey("deployments.deployment_id", ondelete="CASCADE"), nullable=False,
        index=True,
    )
    target_deployment_id = Column(String(36), nullable=False)
    target_version_id = Column(String(100), nullable=False)
    reason = Column(Text, nullable=False)
    initiated_by = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    initiated_at = Column(DateTime, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
