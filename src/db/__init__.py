"""Database package for the rollout engine."""

from src.db.base import Base
from src.db.engine import build_engine, get_sync_engine, get_sync_session_factory, SyncSessionLocal
from src.db.models import (
    DeploymentRecord,
    TrafficSplitRecord,
    DeploymentMetricsRecord,
    DeploymentAlertRecord,
    RollbackOperationRecord,
)

__all__ = [
    "Base",
    "build_engine",
    "get_sync_engine",
    "get_sync_session_factory",
    "SyncSessionLocal",
    "DeploymentRecord",
    "TrafficSplitRecord",
    "DeploymentMetricsRecord",
    "DeploymentAlertRecord",
    "RollbackOperationRecord",
]
