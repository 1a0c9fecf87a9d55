"""Deployment Rollout & Rollback Engine — Configuration."""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet

logger = logging.getLogger(__name__)


class DeploymentStrategy(enum.Enum):
    """Rollout strategy types."""

    ROLLING = "rolling"
    BLUE_GREEN = "blue_green"
    CANARY = "canary"


class DeploymentStatus(enum.Enum):
    """Lifecycle status of a deployment."""

    PENDING = "pending"
    DEPLOYING = "deploying"
    ACTIVE = "active"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"


class Environment(enum.Enum):
    """Target environment of a deployment."""

    STAGING = "staging"
    PRODUCTION = "production"


class AlertType(enum.Enum):
    """Kinds of threshold violation raised against a deployment."""

    LOW_AVAILABILITY = "low_availability"
    HIGH_LATENCY = "high_latency"
    HIGH_ERROR_RATE = "high_error_rate"
    DRIFT_DETECTED = "drift_detected"
    SLO_BREACH = "slo_breach"


class AlertSeverity(enum.Enum):
    """Alert severity levels."""

    WARNING = "warning"
    CRITICAL = "critical"


class RollbackStatus(enum.Enum):
    """Status of a rollback operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_ROLLBACK_STATUSES: FrozenSet[RollbackStatus] = frozenset(
    {RollbackStatus.COMPLETED, RollbackStatus.FAILED, RollbackStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[DeploymentStatus, FrozenSet[DeploymentStatus]] = {
    DeploymentStatus.PENDING: frozenset(
        {DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.DEPLOYING: frozenset(
        {DeploymentStatus.ACTIVE, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.ACTIVE: frozenset(
        {DeploymentStatus.ROLLING_BACK, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.FAILED: frozenset({DeploymentStatus.ROLLING_BACK}),
    DeploymentStatus.ROLLING_BACK: frozenset(
        {DeploymentStatus.ROLLED_BACK, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.ROLLED_BACK: frozenset(),
}


def can_transition(current: DeploymentStatus, target: DeploymentStatus) -> bool:
    """Return True if a deployment may move from ``current`` to ``target``."""
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class RolloutConfig:
    """Timing and sizing knobs for the strategy executor (seconds)."""

    canary_traffic_increment: int = 10
    canary_promotion_delay_seconds: float = 300.0
    blue_green_switch_delay_seconds: float = 60.0
    rolling_batch_size: int = 1
    rolling_batch_delay_seconds: float = 10.0
    health_check_timeout_seconds: float = 300.0
    health_check_interval_seconds: float = 10.0

    def __post_init__(self):
        if not 1 <= self.canary_traffic_increment <= 100:
            raise ValueError(
                "canary_traffic_increment must be between 1 and 100, "
                f"got {self.canary_traffic_increment}"
            )
        if self.rolling_batch_size < 1:
            raise ValueError(
                f"rolling_batch_size must be positive, got {self.rolling_batch_size}"
            )
        for name in (
            "canary_promotion_delay_seconds",
            "blue_green_switch_delay_seconds",
            "rolling_batch_delay_seconds",
            "health_check_timeout_seconds",
            "health_check_interval_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


@dataclass
class MonitoringConfig:
    """Health monitor intervals, windows and escalation policy (seconds)."""

    slo_check_interval_seconds: float = 60.0
    drift_check_interval_seconds: float = 300.0
    slo_window_seconds: float = 300.0
    drift_window_seconds: float = 900.0
    alert_cooldown_seconds: float = 900.0
    auto_rollback_enabled: bool = False
    auto_rollback_threshold: int = 3
    auto_rollback_window_seconds: float = 1800.0


@dataclass
class RollbackConfig:
    """Rollback coordinator configuration."""

    max_rollback_options: int = 5


@dataclass
class OrchestratorConfig:
    """Composition-root configuration bundling every component's settings."""

    rollout: RolloutConfig = field(default_factory=RolloutConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    rollback: RollbackConfig = field(default_factory=RollbackConfig)
    auto_rollback_on_failure: bool = True
    health_window_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings) -> "OrchestratorConfig":
        """Build the engine configuration from a ``Settings`` instance."""
        return cls(
            rollout=RolloutConfig(
                canary_traffic_increment=settings.canary_traffic_increment,
                canary_promotion_delay_seconds=settings.canary_promotion_delay_seconds,
                blue_green_switch_delay_seconds=settings.blue_green_switch_delay_seconds,
                rolling_batch_size=settings.rolling_batch_size,
                rolling_batch_delay_seconds=settings.rolling_batch_delay_seconds,
                health_check_timeout_seconds=settings.health_check_timeout_seconds,
                health_check_interval_seconds=settings.health_check_interval_seconds,
            ),
            monitoring=MonitoringConfig(
                slo_check_interval_seconds=settings.slo_check_interval_seconds,
                drift_check_interval_seconds=settings.drift_check_interval_seconds,
                alert_cooldown_seconds=settings.alert_cooldown_seconds,
                auto_rollback_enabled=settings.auto_rollback_enabled,
                auto_rollback_threshold=settings.auto_rollback_threshold,
                auto_rollback_window_seconds=settings.auto_rollback_window_seconds,
            ),
            auto_rollback_on_failure=settings.auto_rollback_on_failure,
        )
