"""Deployments API — rollout, health, alerts and rollback endpoints.

Rollouts and rollbacks run in the background; the POST endpoints return
202 with the record as created and clients poll for progress.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.config import DEFAULT_API_CONFIG
from src.api.dependencies import get_initiator, get_orchestrator
from src.api.models import (
    AbortResponse,
    AlertResponse,
    CreateDeploymentBody,
    DeploymentResponse,
    HealthSummaryResponse,
    MetricsBody,
    MetricsResponse,
    MonitoringResponse,
    RollbackBody,
    RollbackResponse,
    TrafficSplitResponse,
)
from src.deployment import (
    CreateRollbackRequest,
    DeploymentOrchestrator,
    DeploymentStatus,
    Environment,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/deployments", tags=["deployments"])


# ── Alerts & rollbacks by id ─────────────────────────────────────────


@router.put("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> AlertResponse:
    alert = orchestrator.acknowledge_alert(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return AlertResponse.from_domain(alert)


@router.put("/alerts/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> AlertResponse:
    alert = orchestrator.resolve_alert(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return AlertResponse.from_domain(alert)


@router.get("/rollbacks/{rollback_id}", response_model=RollbackResponse)
async def get_rollback(
    rollback_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> RollbackResponse:
    operation = orchestrator.get_rollback(rollback_id)
    if operation is None:
        raise HTTPException(status_code=404, detail=f"Rollback {rollback_id} not found")
    return RollbackResponse.from_domain(operation)


@router.post("/rollbacks/{rollback_id}/cancel", response_model=RollbackResponse)
async def cancel_rollback(
    rollback_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> RollbackResponse:
    """Cancel a rollback that has not started. 409 once it is running or finished."""
    operation = orchestrator.get_rollback(rollback_id)
    if operation is None:
        raise HTTPException(status_code=404, detail=f"Rollback {rollback_id} not found")
    if not orchestrator.cancel_rollback(rollback_id):
        raise HTTPException(
            status_code=409,
            detail=f"Rollback {rollback_id} is {operation.status.value} and cannot be cancelled",
        )
    return RollbackResponse.from_domain(orchestrator.get_rollback(rollback_id))


# ── Deployments ──────────────────────────────────────────────────────


@router.post("", status_code=202, response_model=DeploymentResponse)
async def create_deployment(
    body: CreateDeploymentBody,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    initiator: str = Depends(get_initiator),
) -> DeploymentResponse:
    """Start a rollout. The deployment is returned PENDING."""
    deployment = await orchestrator.start_rollout(body.to_domain(), initiator)
    return DeploymentResponse.from_domain(deployment)


@router.get("", response_model=list[DeploymentResponse])
async def list_deployments(
    environment: Optional[Environment] = None,
    status: Optional[DeploymentStatus] = None,
    limit: int = Query(
        default=DEFAULT_API_CONFIG.default_page_size, ge=1, le=DEFAULT_API_CONFIG.max_page_size
    ),
    offset: int = Query(default=0, ge=0),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[DeploymentResponse]:
    deployments = orchestrator.list_deployments(
        environment=environment, status=status, limit=limit, offset=offset
    )
    return [DeploymentResponse.from_domain(d) for d in deployments]


@router.get("/{deployment_id}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    return DeploymentResponse.from_domain(orchestrator.get_deployment(deployment_id))


@router.get("/{deployment_id}/health", response_model=HealthSummaryResponse)
async def get_deployment_health(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> HealthSummaryResponse:
    return HealthSummaryResponse.from_domain(orchestrator.get_deployment_health(deployment_id))


@router.get("/{deployment_id}/traffic-splits", response_model=list[TrafficSplitResponse])
async def list_traffic_splits(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[TrafficSplitResponse]:
    return [
        TrafficSplitResponse.from_domain(s)
        for s in orchestrator.list_traffic_splits(deployment_id)
    ]


@router.post("/{deployment_id}/metrics", status_code=201, response_model=MetricsResponse)
async def record_metrics(
    deployment_id: str,
    body: MetricsBody,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> MetricsResponse:
    return MetricsResponse.from_domain(orchestrator.record_metrics(body.to_domain(deployment_id)))


@router.get("/{deployment_id}/alerts", response_model=list[AlertResponse])
async def list_alerts(
    deployment_id: str,
    include_resolved: bool = False,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[AlertResponse]:
    return [
        AlertResponse.from_domain(a)
        for a in orchestrator.list_alerts(deployment_id, include_resolved=include_resolved)
    ]


# ── Rollback ─────────────────────────────────────────────────────────


@router.get("/{deployment_id}/rollback-options", response_model=list[DeploymentResponse])
async def get_rollback_options(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[DeploymentResponse]:
    return [
        DeploymentResponse.from_domain(d)
        for d in orchestrator.get_rollback_options(deployment_id)
    ]


@router.post("/{deployment_id}/rollback", status_code=202, response_model=RollbackResponse)
async def rollback_deployment(
    deployment_id: str,
    body: RollbackBody,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    initiator: str = Depends(get_initiator),
) -> RollbackResponse:
    """Queue a rollback. 409 when there is nothing to roll back to."""
    operation = await orchestrator.rollback(
        deployment_id,
        CreateRollbackRequest(reason=body.reason, target_version_id=body.target_version_id),
        initiator,
    )
    return RollbackResponse.from_domain(operation)


# ── Monitoring & control ─────────────────────────────────────────────


@router.post("/{deployment_id}/monitoring/start", response_model=MonitoringResponse)
async def start_monitoring(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> MonitoringResponse:
    changed = orchestrator.start_monitoring(deployment_id)
    return MonitoringResponse(deployment_id=deployment_id, monitoring=True, changed=changed)


@router.post("/{deployment_id}/monitoring/stop", response_model=MonitoringResponse)
async def stop_monitoring(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> MonitoringResponse:
    orchestrator.get_deployment(deployment_id)
    changed = orchestrator.stop_monitoring(deployment_id)
    return MonitoringResponse(deployment_id=deployment_id, monitoring=False, changed=changed)


@router.post("/{deployment_id}/abort", response_model=AbortResponse)
async def abort_rollout(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    initiator: str = Depends(get_initiator),
) -> AbortResponse:
    """Abort a running rollout. 409 if none is running."""
    orchestrator.get_deployment(deployment_id)
    if not await orchestrator.abort_rollout(deployment_id, initiator):
        raise HTTPException(
            status_code=409, detail=f"No rollout in progress for deployment {deployment_id}"
        )
    return AbortResponse(deployment_id=deployment_id, aborted=True)
