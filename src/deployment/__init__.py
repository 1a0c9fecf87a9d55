"""Deployment Rollout & Rollback Engine.

Drives model versions live with canary, blue-green or rolling strategies,
watches their SLOs and drift, and rolls them back to a prior good version.
"""

from .config import (
    AlertSeverity,
    AlertType,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    MonitoringConfig,
    OrchestratorConfig,
    RollbackConfig,
    RollbackStatus,
    RolloutConfig,
)
from .exceptions import (
    DeploymentError,
    DeploymentNotFoundError,
    DeploymentValidationError,
    ErrorCode,
    HealthCheckTimeoutError,
    InvalidTransitionError,
    NoRollbackTargetError,
    ProvisioningError,
    RollbackError,
    RolloutAbortedError,
    RolloutError,
    RolloutHaltedError,
)
from .models import (
    CreateDeploymentRequest,
    CreateRollbackRequest,
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
from .store import (
    DeploymentFilter,
    DeploymentStore,
    InMemoryDeploymentStore,
)
from .provisioning import (
    BatchSpec,
    NoopProvisioner,
    Provisioner,
)
from .traffic import TrafficManager
from .gate import HealthCheckGate
from .strategies import (
    BlueGreenStrategy,
    CanaryStrategy,
    RollingStrategy,
    RolloutStrategy,
    StrategyExecutor,
)
from .monitor import HealthMonitor
from .rollback import RollbackCoordinator
from .orchestrator import DeploymentOrchestrator

__all__ = [
    # Config
    "AlertSeverity",
    "AlertType",
    "DeploymentStatus",
    "DeploymentStrategy",
    "Environment",
    "MonitoringConfig",
    "OrchestratorConfig",
    "RollbackConfig",
    "RollbackStatus",
    "RolloutConfig",
    # Errors
    "DeploymentError",
    "DeploymentNotFoundError",
    "DeploymentValidationError",
    "ErrorCode",
    "HealthCheckTimeoutError",
    "InvalidTransitionError",
    "NoRollbackTargetError",
    "ProvisioningError",
    "RollbackError",
    "RolloutAbortedError",
    "RolloutError",
    "RolloutHaltedError",
    # Records
    "CreateDeploymentRequest",
    "CreateRollbackRequest",
    "Deployment",
    "DeploymentAlert",
    "DeploymentConfiguration",
    "DeploymentMetrics",
    "DriftThresholds",
    "HealthSummary",
    "RollbackOperation",
    "SLOTargets",
    "TrafficSplit",
    # Store
    "DeploymentFilter",
    "DeploymentStore",
    "InMemoryDeploymentStore",
    # Rollout
    "BatchSpec",
    "NoopProvisioner",
    "Provisioner",
    "TrafficManager",
    "HealthCheckGate",
    "RolloutStrategy",
    "CanaryStrategy",
    "BlueGreenStrategy",
    "RollingStrategy",
    "StrategyExecutor",
    # Monitoring & rollback
    "HealthMonitor",
    "RollbackCoordinator",
    # Orchestrator
    "DeploymentOrchestrator",
]
