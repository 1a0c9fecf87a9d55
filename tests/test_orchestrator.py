"""Tests for the deployment orchestrator."""

import asyncio
import logging

import pytest

from src.deployment.config import (
    AlertSeverity,
    AlertType,
    DeploymentStatus,
    DeploymentStrategy,
    Environment,
    RollbackStatus,
)
from src.deployment.exceptions import DeploymentNotFoundError, DeploymentValidationError
from src.deployment.models import (
    CreateDeploymentRequest,
    CreateRollbackRequest,
    DeploymentAlert,
    DeploymentConfiguration,
    DeploymentMetrics,
)
from src.deployment.orchestrator import FAILURE_ROLLBACK_REASON


def _request(version, strategy=DeploymentStrategy.BLUE_GREEN,
             environment=Environment.PRODUCTION, replicas=1):
    return CreateDeploymentRequest(
        model_version_id=version,
        environment=environment,
        strategy=strategy,
        configuration=DeploymentConfiguration(replicas=replicas),
    )


async def _deploy(orchestrator, version, **kwargs):
    deployment = await orchestrator.start_rollout(_request(version, **kwargs), "alice")
    return await orchestrator.wait_for_rollout(deployment.deployment_id)


# ── Rollout ──────────────────────────────────────────────────────────


class TestStartRollout:
    @pytest.mark.asyncio
    async def test_canary_end_to_end(self, make_orchestrator):
        orchestrator = make_orchestrator()
        created = await orchestrator.start_rollout(
            _request("v2", strategy=DeploymentStrategy.CANARY), "alice"
        )
        assert created.status == DeploymentStatus.PENDING
        assert created.deployed_by == "alice"

        deployment = await orchestrator.wait_for_rollout(created.deployment_id)
        assert deployment.status == DeploymentStatus.ACTIVE
        splits = orchestrator.list_traffic_splits(deployment.deployment_id)
        assert [s.percentage for s in splits] == [25, 50, 75, 100]
        assert orchestrator.monitor.is_monitoring(deployment.deployment_id)
        assert not orchestrator.is_rollout_running(deployment.deployment_id)
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_accepts_string_enums(self, make_orchestrator):
        orchestrator = make_orchestrator()
        request = CreateDeploymentRequest(
            model_version_id="v1", environment="staging", strategy="rolling"
        )
        created = await orchestrator.start_rollout(request)
        assert created.environment == Environment.STAGING
        assert created.strategy == DeploymentStrategy.ROLLING
        deployment = await orchestrator.wait_for_rollout(created.deployment_id)
        assert deployment.status == DeploymentStatus.ACTIVE
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_rejects_unknown_strategy(self, make_orchestrator):
        orchestrator = make_orchestrator()
        with pytest.raises(DeploymentValidationError, match="strategy"):
            await orchestrator.start_rollout(_request("v1", strategy="big_bang"))
        assert orchestrator.list_deployments() == []

    @pytest.mark.asyncio
    async def test_rejects_bad_input(self, make_orchestrator):
        orchestrator = make_orchestrator()
        with pytest.raises(DeploymentValidationError):
            await orchestrator.start_rollout(_request(""))
        with pytest.raises(DeploymentValidationError):
            await orchestrator.start_rollout(_request("v1", environment="qa"))
        with pytest.raises(DeploymentValidationError):
            await orchestrator.start_rollout(_request("v1", replicas=0))


class TestRolloutFailure:
    @pytest.mark.asyncio
    async def test_failure_marks_failed_and_alerts(self, make_orchestrator, make_provisioner):
        orchestrator = make_orchestrator(make_provisioner(healthy=False))
        deployment = await _deploy(orchestrator, "v1")
        assert deployment.status == DeploymentStatus.FAILED

        alerts = orchestrator.list_alerts(deployment.deployment_id)
        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.SLO_BREACH
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].message.startswith("Deployment failed: Health checks timed out")
        assert orchestrator.rollback_coordinator.list_rollbacks() == []
        assert not orchestrator.monitor.is_monitoring(deployment.deployment_id)

    @pytest.mark.asyncio
    async def test_failure_rolls_back_to_previous(self, make_orchestrator, make_provisioner):
        orchestrator = make_orchestrator(make_provisioner(failing_versions={"v2"}))
        baseline = await _deploy(orchestrator, "v1")
        assert baseline.status == DeploymentStatus.ACTIVE

        candidate = await _deploy(orchestrator, "v2")
        assert candidate.status == DeploymentStatus.ROLLED_BACK

        rollbacks = orchestrator.rollback_coordinator.list_rollbacks(candidate.deployment_id)
        assert len(rollbacks) == 1
        assert rollbacks[0].status == RollbackStatus.COMPLETED
        assert rollbacks[0].reason == FAILURE_ROLLBACK_REASON
        assert rollbacks[0].target_deployment_id == baseline.deployment_id
        assert rollbacks[0].initiated_by == "system"
        assert orchestrator.traffic.current_percentage(baseline.deployment_id) == 100
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_failure_rollback_disabled(self, make_orchestrator, make_provisioner):
        orchestrator = make_orchestrator(
            make_provisioner(failing_versions={"v2"}), auto_rollback_on_failure=False
        )
        await _deploy(orchestrator, "v1")
        candidate = await _deploy(orchestrator, "v2")
        assert candidate.status == DeploymentStatus.FAILED
        assert orchestrator.rollback_coordinator.list_rollbacks() == []
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_rollback_lookup_error_is_logged(self, make_orchestrator, make_provisioner,
                                                   monkeypatch, caplog):
        orchestrator = make_orchestrator(make_provisioner(failing_versions={"v2"}))
        await _deploy(orchestrator, "v1")

        def unavailable(deployment_id):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(orchestrator.rollback_coordinator, "get_one_click_options", unavailable)
        with caplog.at_level(logging.ERROR):
            created = await orchestrator.start_rollout(_request("v2"), "alice")
            task = next(
                t for t in asyncio.all_tasks() if t.get_name() == f"rollout-{created.deployment_id}"
            )
            await task

        assert orchestrator.get_deployment(created.deployment_id).status == DeploymentStatus.FAILED
        assert len(orchestrator.list_alerts(created.deployment_id)) == 1
        assert "Automatic rollback of" in caplog.text
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_abort_running_rollout(self, make_orchestrator, make_provisioner):
        provisioner = make_provisioner(block_deploy=True)
        orchestrator = make_orchestrator(provisioner)
        created = await orchestrator.start_rollout(_request("v1"))
        for _ in range(3):
            await asyncio.sleep(0)
        assert orchestrator.is_rollout_running(created.deployment_id)
        assert orchestrator.get_deployment(created.deployment_id).status == DeploymentStatus.DEPLOYING

        assert await orchestrator.abort_rollout(created.deployment_id, "bob") is True
        deployment = orchestrator.get_deployment(created.deployment_id)
        assert deployment.status == DeploymentStatus.FAILED
        assert not orchestrator.is_rollout_running(created.deployment_id)
        alerts = orchestrator.list_alerts(created.deployment_id)
        assert "aborted" in alerts[0].message
        assert await orchestrator.abort_rollout(created.deployment_id) is False

    @pytest.mark.asyncio
    async def test_abort_before_first_step(self, make_orchestrator):
        orchestrator = make_orchestrator()
        created = await orchestrator.start_rollout(_request("v1"))
        assert await orchestrator.abort_rollout(created.deployment_id) is True
        assert orchestrator.get_deployment(created.deployment_id).status == DeploymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_abort_unknown(self, make_orchestrator):
        assert await make_orchestrator().abort_rollout("missing") is False

    @pytest.mark.asyncio
    async def test_shutdown_aborts_rollouts(self, make_orchestrator, make_provisioner):
        orchestrator = make_orchestrator(make_provisioner(block_deploy=True))
        created = await orchestrator.start_rollout(_request("v1"))
        await asyncio.sleep(0)
        await orchestrator.shutdown()
        assert orchestrator.get_deployment(created.deployment_id).status == DeploymentStatus.FAILED


# ── Monitoring & Health ──────────────────────────────────────────────


class TestHealthAndMonitoring:
    @pytest.mark.asyncio
    async def test_health_score(self, make_orchestrator, clock):
        orchestrator = make_orchestrator()
        deployment = await _deploy(orchestrator, "v1")
        dep_id = deployment.deployment_id
        assert orchestrator.get_deployment_health(dep_id).health_score == 100

        orchestrator.store.create_alert(
            DeploymentAlert(deployment_id=dep_id, severity=AlertSeverity.CRITICAL)
        )
        orchestrator.store.create_alert(DeploymentAlert(deployment_id=dep_id))
        orchestrator.record_metrics(
            DeploymentMetrics(deployment_id=dep_id, timestamp=clock.now(), availability=99.0)
        )
        health = orchestrator.get_deployment_health(dep_id)
        assert health.health_score == 40
        assert health.active_alerts == 2
        assert health.critical_alerts == 1
        assert health.last_metrics_timestamp == clock.now()
        assert health.to_dict()["status"] == "active"
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_health_score_floor(self, make_orchestrator):
        orchestrator = make_orchestrator()
        deployment = await _deploy(orchestrator, "v1")
        for _ in range(4):
            orchestrator.store.create_alert(
                DeploymentAlert(deployment_id=deployment.deployment_id, severity=AlertSeverity.CRITICAL)
            )
        assert orchestrator.get_deployment_health(deployment.deployment_id).health_score == 0
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_alert_acknowledge_and_resolve(self, make_orchestrator):
        orchestrator = make_orchestrator()
        deployment = await _deploy(orchestrator, "v1")
        alert = orchestrator.store.create_alert(DeploymentAlert(deployment_id=deployment.deployment_id))
        assert orchestrator.acknowledge_alert(alert.alert_id).acknowledged is True
        assert orchestrator.resolve_alert(alert.alert_id).resolved_at is not None
        assert orchestrator.list_alerts(deployment.deployment_id) == []
        assert orchestrator.resolve_alert("missing") is None
        await orchestrator.shutdown()

    def test_record_metrics_unknown_deployment(self, make_orchestrator):
        with pytest.raises(DeploymentNotFoundError):
            make_orchestrator().record_metrics(DeploymentMetrics(deployment_id="missing"))

    @pytest.mark.asyncio
    async def test_auto_rollback_on_critical_alerts(self, make_orchestrator, clock):
        orchestrator = make_orchestrator(
            auto_rollback_enabled=True, auto_rollback_threshold=2, alert_cooldown_seconds=0
        )
        baseline = await _deploy(orchestrator, "v1")
        candidate = await _deploy(orchestrator, "v2")
        assert orchestrator.monitor.is_monitoring(candidate.deployment_id)

        for _ in range(2):
            orchestrator.record_metrics(
                DeploymentMetrics(
                    deployment_id=candidate.deployment_id,
                    timestamp=clock.now(),
                    error_rate=10.0,
                )
            )
            await orchestrator.monitor.check_slos(candidate.deployment_id)
            clock.advance(1)

        assert orchestrator.get_deployment(candidate.deployment_id).status == DeploymentStatus.ROLLED_BACK
        assert not orchestrator.monitor.is_monitoring(candidate.deployment_id)
        operation = orchestrator.rollback_coordinator.list_rollbacks(candidate.deployment_id)[0]
        assert operation.reason == "auto-rollback: 2 critical alerts"
        assert operation.target_deployment_id == baseline.deployment_id
        await orchestrator.shutdown()


# ── Rollback & Queries ───────────────────────────────────────────────


class TestRollbackAndQueries:
    @pytest.mark.asyncio
    async def test_manual_rollback(self, make_orchestrator):
        orchestrator = make_orchestrator()
        baseline = await _deploy(orchestrator, "v1")
        candidate = await _deploy(orchestrator, "v2")
        options = orchestrator.get_rollback_options(candidate.deployment_id)
        assert [o.deployment_id for o in options] == [baseline.deployment_id]

        operation = await orchestrator.rollback(
            candidate.deployment_id, CreateRollbackRequest(reason="bad predictions"), "carol"
        )
        assert operation.status == RollbackStatus.PENDING
        finished = await orchestrator.wait_for_rollback(operation.rollback_id)
        assert finished.status == RollbackStatus.COMPLETED
        assert orchestrator.get_rollback(operation.rollback_id).initiated_by == "carol"
        assert orchestrator.get_deployment(candidate.deployment_id).status == DeploymentStatus.ROLLED_BACK
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_queued_rollback(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await _deploy(orchestrator, "v1")
        candidate = await _deploy(orchestrator, "v2")
        operation = await orchestrator.rollback(
            candidate.deployment_id, CreateRollbackRequest(reason="x")
        )
        assert orchestrator.cancel_rollback(operation.rollback_id) is True
        finished = await orchestrator.wait_for_rollback(operation.rollback_id)
        assert finished.status == RollbackStatus.CANCELLED
        assert orchestrator.get_deployment(candidate.deployment_id).status == DeploymentStatus.ACTIVE
        await orchestrator.shutdown()

    def test_get_unknown_deployment(self, make_orchestrator):
        with pytest.raises(DeploymentNotFoundError):
            make_orchestrator().get_deployment("missing")

    @pytest.mark.asyncio
    async def test_list_and_summary(self, make_orchestrator, make_provisioner):
        orchestrator = make_orchestrator(
            make_provisioner(failing_versions={"v2"}), auto_rollback_on_failure=False
        )
        await _deploy(orchestrator, "v1")
        await _deploy(orchestrator, "v2", environment=Environment.STAGING)

        assert len(orchestrator.list_deployments()) == 2
        staging = orchestrator.list_deployments(environment=Environment.STAGING)
        assert [d.model_version_id for d in staging] == ["v2"]
        failed = orchestrator.list_deployments(status=DeploymentStatus.FAILED)
        assert len(failed) == 1

        summary = orchestrator.get_summary()
        assert summary["total"] == 2
        assert summary["by_status"]["active"] == 1
        assert summary["by_status"]["failed"] == 1
        assert summary["success_rate"] == 0.5
        assert summary["monitored"] == 1
        assert summary["running_rollouts"] == 0
        assert summary["rollbacks"]["total"] == 0
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_rollback_fails_when_target_unhealthy(self, make_orchestrator, make_provisioner):
        provisioner = make_provisioner()
        orchestrator = make_orchestrator(provisioner)
        baseline = await _deploy(orchestrator, "v1")
        candidate = await _deploy(orchestrator, "v2")
        provisioner.failing_versions.add("v1")
        probes_before = provisioner.probes

        operation = await orchestrator.rollback(
            candidate.deployment_id, CreateRollbackRequest(reason="bad predictions")
        )
        finished = await orchestrator.wait_for_rollback(operation.rollback_id)
        assert finished.status == RollbackStatus.FAILED
        assert finished.error_message.startswith("Rollback verification failed")
        assert provisioner.probes - probes_before == 3
        assert orchestrator.get_deployment(candidate.deployment_id).status == DeploymentStatus.FAILED
        assert orchestrator.get_deployment(baseline.deployment_id).status == DeploymentStatus.ACTIVE
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_blue_green_retires_previous_split(self, make_orchestrator):
        orchestrator = make_orchestrator()
        blue = await _deploy(orchestrator, "v1")
        green = await _deploy(orchestrator, "v2")
        blue_splits = orchestrator.list_traffic_splits(blue.deployment_id)
        assert [s.percentage for s in blue_splits] == [100]
        assert blue_splits[0].completed_at is not None
        assert orchestrator.list_traffic_splits(green.deployment_id)[0].completed_at is None
        await orchestrator.shutdown()
