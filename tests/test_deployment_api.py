"""Tests for the deployments REST API."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.errors import ERROR_STATUS_MAP, error_body
from src.api.models import CreateDeploymentBody
from src.deployment import (
    AlertSeverity,
    Deployment,
    DeploymentAlert,
    DeploymentNotFoundError,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    ErrorCode,
    RollbackOperation,
)

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
BASE = "/api/v1/deployments"


class TestErrorMapping:
    def test_every_code_mapped(self):
        assert set(ERROR_STATUS_MAP) == set(ErrorCode)

    def test_error_body(self):
        body = error_body(DeploymentNotFoundError("dep-1"))
        assert body["error"]["code"] == "DEPLOYMENT_NOT_FOUND"
        assert body["error"]["deployment_id"] == "dep-1"
        assert "timestamp" in body["error"]

    def test_body_to_domain(self):
        body = CreateDeploymentBody(model_version_id="v1", strategy="canary", environment="production")
        request = body.to_domain()
        assert request.model_version_id == "v1"
        assert request.strategy == "canary"
        assert request.configuration.replicas == 1


class TestDeploymentRoutes:
    """Route tests against a pre-seeded in-memory store."""

    @pytest.fixture
    def orchestrator(self, make_orchestrator):
        return make_orchestrator()

    @pytest.fixture
    def client(self, orchestrator):
        with TestClient(create_app(orchestrator=orchestrator, setup_logging=False)) as client:
            yield client

    def _seed(self, orchestrator, version, status=DeploymentStatus.ACTIVE, minutes=0,
              environment=Environment.PRODUCTION):
        return orchestrator.store.create_deployment(
            Deployment(
                model_version_id=version,
                environment=environment,
                strategy=DeploymentStrategy.CANARY,
                status=status,
                created_at=T0 + timedelta(minutes=minutes),
            )
        )

    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["running_rollouts"] == 0

    def test_create_deployment(self, client):
        resp = client.post(
            BASE,
            json={"model_version_id": "v7", "strategy": "blue_green", "environment": "production"},
            headers={"X-User-Id": "alice"},
        )
        assert resp.status_code == 202
        data = resp.json()
        assert data["status"] == "pending"
        assert data["strategy"] == "blue_green"
        assert data["deployed_by"] == "alice"

    def test_create_default_initiator(self, client):
        resp = client.post(BASE, json={"model_version_id": "v7"})
        assert resp.status_code == 202
        assert resp.json()["deployed_by"] == "operator"

    def test_create_invalid_strategy(self, client):
        resp = client.post(BASE, json={"model_version_id": "v7", "strategy": "big_bang"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_create_missing_version(self, client):
        resp = client.post(BASE, json={"strategy": "canary"})
        assert resp.status_code == 422

    def test_get_and_list(self, client, orchestrator):
        first = self._seed(orchestrator, "v1")
        second = self._seed(orchestrator, "v2", minutes=1, environment=Environment.STAGING)

        resp = client.get(f"{BASE}/{first.deployment_id}")
        assert resp.status_code == 200
        assert resp.json()["model_version_id"] == "v1"

        resp = client.get(BASE)
        assert [d["deployment_id"] for d in resp.json()] == [
            second.deployment_id, first.deployment_id,
        ]
        resp = client.get(BASE, params={"environment": "staging"})
        assert [d["model_version_id"] for d in resp.json()] == ["v2"]

    def test_get_unknown(self, client):
        resp = client.get(f"{BASE}/missing")
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "DEPLOYMENT_NOT_FOUND"
        assert error["deployment_id"] == "missing"

    def test_health_summary(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        orchestrator.store.create_alert(
            DeploymentAlert(deployment_id=dep.deployment_id, severity=AlertSeverity.CRITICAL)
        )
        resp = client.get(f"{BASE}/{dep.deployment_id}/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["health_score"] == 70
        assert data["critical_alerts"] == 1

    def test_record_metrics_and_alerts(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        resp = client.post(
            f"{BASE}/{dep.deployment_id}/metrics",
            json={"availability": 99.5, "latency_p95": 320, "request_count": 1200},
        )
        assert resp.status_code == 201
        assert resp.json()["request_count"] == 1200

        alert = orchestrator.store.create_alert(DeploymentAlert(deployment_id=dep.deployment_id))
        resp = client.get(f"{BASE}/{dep.deployment_id}/alerts")
        assert [a["alert_id"] for a in resp.json()] == [alert.alert_id]

        resp = client.put(f"{BASE}/alerts/{alert.alert_id}/acknowledge")
        assert resp.json()["acknowledged"] is True
        resp = client.put(f"{BASE}/alerts/{alert.alert_id}/resolve")
        assert resp.json()["resolved_at"] is not None
        assert client.get(f"{BASE}/{dep.deployment_id}/alerts").json() == []
        assert client.put(f"{BASE}/alerts/missing/resolve").status_code == 404

    def test_metrics_validation(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        resp = client.post(f"{BASE}/{dep.deployment_id}/metrics", json={"availability": 140})
        assert resp.status_code == 422

    def test_rollback_options_and_queue(self, client, orchestrator):
        baseline = self._seed(orchestrator, "v1")
        candidate = self._seed(orchestrator, "v2", minutes=1)

        resp = client.get(f"{BASE}/{candidate.deployment_id}/rollback-options")
        assert [d["deployment_id"] for d in resp.json()] == [baseline.deployment_id]

        resp = client.post(
            f"{BASE}/{candidate.deployment_id}/rollback",
            json={"reason": "bad predictions"},
            headers={"X-User-Id": "bob"},
        )
        assert resp.status_code == 202
        data = resp.json()
        assert data["target_deployment_id"] == baseline.deployment_id
        assert data["initiated_by"] == "bob"

        resp = client.get(f"{BASE}/rollbacks/{data['rollback_id']}")
        assert resp.status_code == 200

    def test_rollback_without_target(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        resp = client.post(f"{BASE}/{dep.deployment_id}/rollback", json={"reason": "bad"})
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "NO_ROLLBACK_TARGET"
        assert error["message"] == "no previous deployment found for rollback"

    def test_rollback_requires_reason(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        resp = client.post(f"{BASE}/{dep.deployment_id}/rollback", json={"reason": ""})
        assert resp.status_code == 422

    def test_cancel_rollback(self, client, orchestrator):
        baseline = self._seed(orchestrator, "v1")
        candidate = self._seed(orchestrator, "v2", minutes=1)
        operation = orchestrator.store.create_rollback_operation(
            RollbackOperation(
                deployment_id=candidate.deployment_id,
                target_deployment_id=baseline.deployment_id,
                target_version_id="v1",
                reason="queued",
            )
        )
        resp = client.post(f"{BASE}/rollbacks/{operation.rollback_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        resp = client.post(f"{BASE}/rollbacks/{operation.rollback_id}/cancel")
        assert resp.status_code == 409
        assert client.post(f"{BASE}/rollbacks/missing/cancel").status_code == 404

    def test_monitoring_controls(self, client, orchestrator):
        active = self._seed(orchestrator, "v1")
        pending = self._seed(orchestrator, "v2", status=DeploymentStatus.PENDING, minutes=1)

        resp = client.post(f"{BASE}/{active.deployment_id}/monitoring/start")
        assert resp.status_code == 200
        assert resp.json()["changed"] is True
        resp = client.post(f"{BASE}/{active.deployment_id}/monitoring/start")
        assert resp.json()["changed"] is False

        resp = client.post(f"{BASE}/{active.deployment_id}/monitoring/stop")
        assert resp.json() == {
            "deployment_id": active.deployment_id, "monitoring": False, "changed": True,
        }

        resp = client.post(f"{BASE}/{pending.deployment_id}/monitoring/start")
        assert resp.status_code == 422

    def test_abort_without_rollout(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        resp = client.post(f"{BASE}/{dep.deployment_id}/abort")
        assert resp.status_code == 409
        assert client.post(f"{BASE}/missing/abort").status_code == 404

    def test_traffic_splits(self, client, orchestrator):
        dep = self._seed(orchestrator, "v1")
        orchestrator.traffic.shift_traffic(dep.deployment_id, 10)
        orchestrator.traffic.shift_traffic(dep.deployment_id, 100)
        resp = client.get(f"{BASE}/{dep.deployment_id}/traffic-splits")
        assert [s["percentage"] for s in resp.json()] == [10, 100]
