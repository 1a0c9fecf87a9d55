"""Deployment Rollout & Rollback Engine — Rollout Strategies.

A rollout takes a PENDING deployment through DEPLOYING to ACTIVE. The
strategy recorded on the deployment is resolved once, from
``STRATEGY_REGISTRY``, when the rollout starts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Type

from .alerts import count_critical
from .config import DeploymentStatus, DeploymentStrategy, RolloutConfig
from .exceptions import DeploymentValidationError, RolloutHaltedError
from .gate import HealthCheckGate
from .models import Deployment
from .provisioning import BatchSpec
from .store import DeploymentStore, transition_status
from .traffic import TrafficManager

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RolloutStrategy:
    """Base class for the rollout variants.

    Subclasses implement ``run``; the shared helpers cover provisioning,
    gating and traffic changes so every variant logs and persists them the
    same way.
    """

    strategy: DeploymentStrategy

    def __init__(
        self,
        store: DeploymentStore,
        traffic: TrafficManager,
        gate: HealthCheckGate,
        config: RolloutConfig,
        sleep: Sleep,
    ):
        self._store = store
        self._traffic = traffic
        self._gate = gate
        self._config = config
        self._sleep = sleep

    async def run(self, deployment: Deployment) -> None:
        raise NotImplementedError

    async def _provision_all(self, deployment: Deployment) -> None:
        replicas = max(1, deployment.configuration.replicas)
        await self._gate.provision(deployment, BatchSpec(replicas=replicas))
        await self._gate.wait_until_healthy(deployment)

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)


class CanaryStrategy(RolloutStrategy):
    """Stepwise traffic increase with a health gate between steps."""

    strategy = DeploymentStrategy.CANARY

    async def run(self, deployment: Deployment) -> None:
        deployment_id = deployment.deployment_id
        await self._provision_all(deployment)

        increment = self._config.canary_traffic_increment
        current = 0
        while current < 100:
            target = min(current + increment, 100)
            if target <= current:
                break
            self._traffic.shift_traffic(deployment_id, target)
            current = target
            if current >= 100:
                break

            logger.info(
                "Canary %s at %d%%, next promotion in %gs",
                deployment_id,
                current,
                self._config.canary_promotion_delay_seconds,
            )
            await self._pause(self._config.canary_promotion_delay_seconds)
            await self._gate.wait_until_healthy(deployment)

            critical = count_critical(self._store.list_alerts(deployment_id))
            if critical > 0:
                raise RolloutHaltedError(deployment_id, critical)

        logger.info("Canary %s fully promoted", deployment_id)


class BlueGreenStrategy(RolloutStrategy):
    """Bring up green alongside blue, then switch all traffic at once.

    The previous (blue) deployment is left ACTIVE; it stays available as a
    rollback target.
    """

    strategy = DeploymentStrategy.BLUE_GREEN

    async def run(self, deployment: Deployment) -> None:
        await self._provision_all(deployment)
        logger.info(
            "Green deployment %s healthy, switching in %gs",
            deployment.deployment_id,
            self._config.blue_green_switch_delay_seconds,
        )
        await self._pause(self._config.blue_green_switch_delay_seconds)
        self._traffic.shift_traffic(deployment.deployment_id, 100)


class RollingStrategy(RolloutStrategy):
    """Replace replicas in fixed-size batches; traffic follows the replicas."""

    strategy = DeploymentStrategy.ROLLING

    def plan_batches(self, replicas: int) -> List[BatchSpec]:
        replicas = max(1, replicas)
        size = min(self._config.rolling_batch_size, replicas)
        sizes = []
        remaining = replicas
        while remaining > 0:
            sizes.append(min(size, remaining))
            remaining -= size
        return [
            BatchSpec(replicas=n, batch_index=i, batch_count=len(sizes))
            for i, n in enumerate(sizes)
        ]

    async def run(self, deployment: Deployment) -> None:
        batches = self.plan_batches(deployment.configuration.replicas)
        for batch in batches:
            logger.info(
                "Rolling %s: batch %d/%d (%d replicas)",
                deployment.deployment_id,
                batch.batch_index + 1,
                batch.batch_count,
                batch.replicas,
            )
            await self._gate.provision(deployment, batch)
            await self._gate.wait_until_healthy(deployment)
            if batch.batch_index < batch.batch_count - 1:
                await self._pause(self._config.rolling_batch_delay_seconds)


STRATEGY_REGISTRY: Dict[DeploymentStrategy, Type[RolloutStrategy]] = {
    DeploymentStrategy.CANARY: CanaryStrategy,
    DeploymentStrategy.BLUE_GREEN: BlueGreenStrategy,
    DeploymentStrategy.ROLLING: RollingStrategy,
}


class StrategyExecutor:
    """Drives a deployment through its rollout strategy.

    Errors from any phase propagate unchanged; marking the deployment
    FAILED is the caller's job.
    """

    def __init__(
        self,
        store: DeploymentStore,
        traffic: TrafficManager,
        gate: HealthCheckGate,
        config: Optional[RolloutConfig] = None,
        sleep: Optional[Sleep] = None,
    ):
        self._store = store
        self._traffic = traffic
        self._gate = gate
        self._config = config or RolloutConfig()
        self._sleep = sleep or asyncio.sleep

    def strategy_for(self, strategy: DeploymentStrategy) -> RolloutStrategy:
        cls = STRATEGY_REGISTRY.get(strategy)
        if cls is None:
            raise DeploymentValidationError(f"Unsupported strategy: {strategy}")
        return cls(self._store, self._traffic, self._gate, self._config, self._sleep)

    async def execute(self, deployment_id: str) -> Deployment:
        """Run the rollout and return the deployment once ACTIVE."""
        deployment = transition_status(
            self._store, deployment_id, DeploymentStatus.DEPLOYING
        )
        runner = self.strategy_for(deployment.strategy)
        logger.info(
            "Rolling out %s (version %s) to %s with %s strategy",
            deployment_id,
            deployment.model_version_id,
            deployment.environment.value,
            deployment.strategy.value,
        )
        await runner.run(deployment)
        return transition_status(self._store, deployment_id, DeploymentStatus.ACTIVE)
