"""Deployment Rollout & Rollback Engine — Alert Evaluation & Recording."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .config import AlertSeverity, AlertType
from .models import (
    DeploymentAlert,
    DriftThresholds,
    SLOTargets,
    utcnow,
)
from .metrics import MetricsSummary
from .store import DeploymentStore

logger = logging.getLogger(__name__)


# ── Threshold rules ──────────────────────────────────────────────────


def availability_severity(actual: float, target: float) -> Optional[AlertSeverity]:
    """Severity for an availability reading, or None when within target."""
    if actual >= target:
        return None
    if actual < target - 1:
        return AlertSeverity.CRITICAL
    return AlertSeverity.WARNING


def latency_severity(actual: float, target: float) -> Optional[AlertSeverity]:
    """Severity for a latency reading, or None when within target."""
    if actual <= target:
        return None
    if actual > target * 1.5:
        return AlertSeverity.CRITICAL
    return AlertSeverity.WARNING


def error_rate_severity(actual: float, target: float) -> Optional[AlertSeverity]:
    """Severity for an error-rate reading, or None when within target."""
    if actual <= target:
        return None
    if actual > target * 2:
        return AlertSeverity.CRITICAL
    return AlertSeverity.WARNING


def evaluate_slo_breaches(
    deployment_id: str, summary: MetricsSummary, targets: SLOTargets
) -> List[DeploymentAlert]:
    """Compare a window summary against SLO targets.

    Returns candidate alerts in evaluation order: availability, P95, P99,
    error rate. Nothing is persisted here.
    """
    candidates: List[DeploymentAlert] = []

    severity = availability_severity(summary.availability, targets.availability)
    if severity is not None:
        candidates.append(
            DeploymentAlert(
                deployment_id=deployment_id,
                alert_type=AlertType.LOW_AVAILABILITY,
                severity=severity,
                threshold=targets.availability,
                actual_value=summary.availability,
                message=(
                    f"Availability {summary.availability:.2f}% is below "
                    f"target {targets.availability}%"
                ),
            )
        )

    for label, actual, target in (
        ("P95", summary.latency_p95, targets.latency_p95),
        ("P99", summary.latency_p99, targets.latency_p99),
    ):
        severity = latency_severity(actual, target)
        if severity is not None:
            candidates.append(
                DeploymentAlert(
                    deployment_id=deployment_id,
                    alert_type=AlertType.HIGH_LATENCY,
                    severity=severity,
                    threshold=target,
                    actual_value=actual,
                    message=f"{label} latency {actual:.0f}ms exceeds target {target:g}ms",
                )
            )

    severity = error_rate_severity(summary.error_rate, targets.error_rate)
    if severity is not None:
        candidates.append(
            DeploymentAlert(
                deployment_id=deployment_id,
                alert_type=AlertType.HIGH_ERROR_RATE,
                severity=severity,
                threshold=targets.error_rate,
                actual_value=summary.error_rate,
                message=(
                    f"Error rate {summary.error_rate:.2f}% exceeds "
                    f"target {targets.error_rate}%"
                ),
            )
        )

    return candidates


def evaluate_drift_breaches(
    deployment_id: str, summary: MetricsSummary, thresholds: DriftThresholds
) -> List[DeploymentAlert]:
    """Compare mean drift scores against thresholds (warning only)."""
    candidates: List[DeploymentAlert] = []
    for label, actual, threshold in (
        ("Input", summary.input_drift, thresholds.input_drift),
        ("Output", summary.output_drift, thresholds.output_drift),
        ("Performance", summary.performance_drift, thresholds.performance_drift),
    ):
        if actual > threshold:
            candidates.append(
                DeploymentAlert(
                    deployment_id=deployment_id,
                    alert_type=AlertType.DRIFT_DETECTED,
                    severity=AlertSeverity.WARNING,
                    threshold=threshold,
                    actual_value=actual,
                    message=(
                        f"{label} drift detected above threshold: "
                        f"{actual:.4f} > {threshold:g}"
                    ),
                )
            )
    return candidates


# ── Recording ────────────────────────────────────────────────────────


class AlertRecorder:
    """Persists alerts subject to the per-(deployment, type) cooldown.

    The cooldown is a lookup-before-insert against the store. Two
    evaluations racing on the same deployment and type can both pass the
    lookup; the resulting duplicate is tolerated.
    """

    def __init__(
        self,
        store: DeploymentStore,
        cooldown_seconds: float = 900.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock or utcnow

    def in_cooldown(self, deployment_id: str, alert_type: AlertType) -> bool:
        """True if an unresolved alert of this type fired inside the window."""
        cutoff = self._clock() - self._cooldown
        return any(
            alert.alert_type == alert_type
            and alert.triggered_at > cutoff
            and alert.resolved_at is None
            for alert in self._store.list_alerts(deployment_id, include_resolved=False)
        )

    def record(self, candidate: DeploymentAlert) -> Optional[DeploymentAlert]:
        """Store ``candidate`` unless suppressed; returns the stored alert."""
        if self.in_cooldown(candidate.deployment_id, candidate.alert_type):
            logger.debug(
                "Suppressed %s alert for %s (cooldown)",
                candidate.alert_type.value,
                candidate.deployment_id,
            )
            return None
        candidate.triggered_at = self._clock()
        alert = self._store.create_alert(candidate)
        log = logger.error if alert.severity == AlertSeverity.CRITICAL else logger.warning
        log(
            "Alert %s [%s/%s] for deployment %s: %s",
            alert.alert_id,
            alert.alert_type.value,
            alert.severity.value,
            alert.deployment_id,
            alert.message,
        )
        return alert

    def count_recent_critical(self, deployment_id: str, window_seconds: float) -> int:
        """Count unresolved critical alerts triggered within the window."""
        cutoff = self._clock() - timedelta(seconds=window_seconds)
        return sum(
            1
            for alert in self._store.list_alerts(deployment_id, include_resolved=False)
            if alert.severity == AlertSeverity.CRITICAL
            and alert.triggered_at > cutoff
            and alert.resolved_at is None
        )


def count_critical(alerts: List[DeploymentAlert]) -> int:
    """Count unresolved critical alerts in ``alerts``."""
    return sum(
        1
        for alert in alerts
        if alert.severity == AlertSeverity.CRITICAL and alert.resolved_at is None
    )
