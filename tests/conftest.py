"""Pytest configuration and shared fixtures."""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.deployment.config import (  # noqa: E402
    MonitoringConfig,
    OrchestratorConfig,
    RolloutConfig,
)
from src.deployment.orchestrator import DeploymentOrchestrator  # noqa: E402


class FakeClock:
    """Wall and monotonic clocks that only move when something sleeps."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        self.mono = 0.0
        self.sleeps = []

    def now(self):
        return self.current

    def monotonic(self):
        return self.mono

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)
        self.mono += seconds

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class FakeProvisioner:
    """Scriptable provisioner.

    ``probe_results`` is consumed first (exceptions are raised), then every
    probe returns ``healthy``. Versions in ``failing_versions`` never pass.
    """

    def __init__(self, probe_results=None, healthy=True, deploy_failures=0,
                 failing_versions=(), block_deploy=False, on_probe=None):
        self.probe_results = list(probe_results or [])
        self.healthy = healthy
        self.deploy_failures = deploy_failures
        self.failing_versions = set(failing_versions)
        self.block_deploy = block_deploy
        self.on_probe = on_probe
        self.release = asyncio.Event()
        self.batches = []
        self.probes = 0

    async def deploy_batch(self, deployment, batch):
        if self.block_deploy:
            await self.release.wait()
        if self.deploy_failures > 0:
            self.deploy_failures -= 1
            raise RuntimeError("node pool exhausted")
        self.batches.append(batch)

    async def health_probe(self, deployment):
        self.probes += 1
        if self.on_probe is not None:
            self.on_probe(deployment)
        if deployment.model_version_id in self.failing_versions:
            return False
        if self.probe_results:
            result = self.probe_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.healthy


def fast_rollout_config(**overrides) -> RolloutConfig:
    values = dict(
        canary_traffic_increment=25,
        canary_promotion_delay_seconds=60,
        blue_green_switch_delay_seconds=0,
        rolling_batch_size=2,
        rolling_batch_delay_seconds=5,
        health_check_timeout_seconds=30,
        health_check_interval_seconds=10,
    )
    values.update(overrides)
    return RolloutConfig(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_provisioner():
    return FakeProvisioner


@pytest.fixture
def make_orchestrator(clock):
    """Factory for orchestrators running on the fake clock.

    Monitoring loops use hour-long intervals so tests drive evaluation
    explicitly through ``HealthMonitor.check_slos``.
    """

    def _make(provisioner=None, store=None, auto_rollback_on_failure=True,
              rollout=None, **monitoring):
        monitoring.setdefault("slo_check_interval_seconds", 3600)
        monitoring.setdefault("drift_check_interval_seconds", 3600)
        config = OrchestratorConfig(
            rollout=rollout or fast_rollout_config(),
            monitoring=MonitoringConfig(**monitoring),
            auto_rollback_on_failure=auto_rollback_on_failure,
        )
        return DeploymentOrchestrator(
            store=store,
            provisioner=provisioner or FakeProvisioner(),
            config=config,
            clock=clock.now,
            sleep=clock.sleep,
            monotonic=clock.monotonic,
        )

    return _make
