"""Deployment Logging Context.

Binds the deployment being worked on (and optionally the operation and
initiator) to every log entry emitted inside the context. Values live in
contextvars, so each rollout task and monitoring tick carries its own.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_deployment_id_var: ContextVar[str] = ContextVar("deployment_id", default="")
_operation_var: ContextVar[str] = ContextVar("operation", default="")
_initiator_var: ContextVar[str] = ContextVar("initiator", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def get_deployment_id() -> str:
    """Get the deployment ID bound to the current context."""
    return _deployment_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all bound context values as a dictionary for log binding."""
    ctx = {}
    deployment_id = _deployment_id_var.get()
    if deployment_id:
        ctx["deployment_id"] = deployment_id
    operation = _operation_var.get()
    if operation:
        ctx["operation"] = operation
    initiator = _initiator_var.get()
    if initiator:
        ctx["initiator"] = initiator
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class DeploymentContext:
    """Context manager for deployment-scoped logging context.

    Example:
        with DeploymentContext(deployment_id=dep.deployment_id, operation="rollout"):
            logger.info("switching traffic")  # includes deployment_id, operation
    """

    deployment_id: str = ""
    operation: str = ""
    initiator: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "DeploymentContext":
        self._tokens = [
            (_deployment_id_var, _deployment_id_var.set(self.deployment_id)),
            (_operation_var, _operation_var.set(self.operation)),
            (_initiator_var, _initiator_var.set(self.initiator)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # Restore rather than clear so contexts nest.
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
