"""Deployment Rollout & Rollback Engine — Exception Hierarchy.

Every engine error derives from ``DeploymentError`` and carries an
``ErrorCode`` so outer layers (the HTTP router) can map the whole family
with one handler.
"""

import enum
from typing import Optional


class ErrorCode(enum.Enum):
    """Stable error codes exposed to callers."""

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DEPLOYMENT_NOT_FOUND = "DEPLOYMENT_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Rollout execution
    HEALTH_CHECK_TIMEOUT = "HEALTH_CHECK_TIMEOUT"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    ROLLOUT_HALTED = "ROLLOUT_HALTED"
    ROLLOUT_ABORTED = "ROLLOUT_ABORTED"

    # Rollback
    NO_ROLLBACK_TARGET = "NO_ROLLBACK_TARGET"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"


class DeploymentError(Exception):
    """Base exception for all rollout engine errors."""

    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, deployment_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.deployment_id = deployment_id


# ── Validation ───────────────────────────────────────────────────────


class DeploymentValidationError(DeploymentError):
    """Raised when a rollout request is malformed (unknown strategy etc.)."""

    error_code = ErrorCode.VALIDATION_ERROR


class DeploymentNotFoundError(DeploymentError):
    """Raised when a deployment id does not resolve to a record."""

    error_code = ErrorCode.DEPLOYMENT_NOT_FOUND

    def __init__(self, deployment_id: str):
        super().__init__(f"Deployment {deployment_id} not found", deployment_id)


class InvalidTransitionError(DeploymentError):
    """Raised when a status change is not allowed by the lifecycle table."""

    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, deployment_id: str, current, target):
        super().__init__(
            f"Cannot move deployment {deployment_id} from "
            f"{current.value} to {target.value}",
            deployment_id,
        )
        self.current = current
        self.target = target


# ── Rollout execution ────────────────────────────────────────────────


class RolloutError(DeploymentError):
    """Base class for failures that end a rollout in FAILED."""


class HealthCheckTimeoutError(RolloutError):
    """Raised when the health gate does not pass within its timeout."""

    error_code = ErrorCode.HEALTH_CHECK_TIMEOUT

    def __init__(self, deployment_id: str, timeout_seconds: float):
        super().__init__(
            f"Health checks timed out for deployment {deployment_id} "
            f"after {timeout_seconds:g}s",
            deployment_id,
        )
        self.timeout_seconds = timeout_seconds


class ProvisioningError(RolloutError):
    """Raised when a replica batch could not be provisioned in time."""

    error_code = ErrorCode.PROVISIONING_FAILED


class RolloutHaltedError(RolloutError):
    """Raised when unresolved critical alerts stop a canary promotion."""

    error_code = ErrorCode.ROLLOUT_HALTED

    def __init__(self, deployment_id: str, critical_alerts: int):
        super().__init__(
            f"Canary deployment halted due to {critical_alerts} critical alerts",
            deployment_id,
        )
        self.critical_alerts = critical_alerts


class RolloutAbortedError(RolloutError):
    """Recorded when an operator aborts a running rollout."""

    error_code = ErrorCode.ROLLOUT_ABORTED


# ── Rollback ─────────────────────────────────────────────────────────


class RollbackError(DeploymentError):
    """Raised when a rollback cannot be started or does not complete."""

    error_code = ErrorCode.ROLLBACK_FAILED


class NoRollbackTargetError(RollbackError):
    """Raised when no prior ACTIVE deployment exists in the environment."""

    error_code = ErrorCode.NO_ROLLBACK_TARGET

    def __init__(self, deployment_id: str):
        super().__init__("no previous deployment found for rollback", deployment_id)
