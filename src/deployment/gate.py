"""Deployment Rollout & Rollback Engine — Health-Check Gate.

Polls the provisioner until a deployment reports healthy or the overall
timeout elapses. Probe and provisioning exceptions are treated as "not yet"
and retried on the same fixed interval; only the timeout is fatal.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from .config import RolloutConfig
from .exceptions import HealthCheckTimeoutError, ProvisioningError
from .models import Deployment
from .provisioning import BatchSpec, Provisioner

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class HealthCheckGate:
    """Fixed-interval poller bounded by a hard timeout.

    Args:
        provisioner: Source of ``health_probe`` / ``deploy_batch``.
        config: Supplies the timeout and retry interval.
        clock: Monotonic clock in seconds (injectable for tests).
        sleep: Awaitable sleep (injectable for tests).
    """

    def __init__(
        self,
        provisioner: Provisioner,
        config: Optional[RolloutConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ):
        self._provisioner = provisioner
        self._config = config or RolloutConfig()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

    @property
    def timeout_seconds(self) -> float:
        return self._config.health_check_timeout_seconds

    @property
    def interval_seconds(self) -> float:
        return self._config.health_check_interval_seconds

    async def _poll(self, attempt: Callable[[], Awaitable[bool]], what: str, deployment_id: str) -> bool:
        """Run ``attempt`` until it returns True; False once the timeout is hit."""
        started = self._clock()
        tries = 0
        while True:
            elapsed = self._clock() - started
            if elapsed >= self.timeout_seconds:
                logger.error(
                    "%s for %s gave up after %d attempts (%.1fs)",
                    what,
                    deployment_id,
                    tries,
                    elapsed,
                )
                return False
            tries += 1
            try:
                if await attempt():
                    logger.debug(
                        "%s for %s passed on attempt %d", what, deployment_id, tries
                    )
                    return True
            except Exception as exc:
                logger.warning(
                    "%s attempt %d for %s raised: %s", what, tries, deployment_id, exc
                )
            remaining = self.timeout_seconds - (self._clock() - started)
            await self._sleep(max(0.0, min(self.interval_seconds, remaining)))

    async def wait_until_healthy(self, deployment: Deployment) -> None:
        """Block until ``health_probe`` passes.

        Raises:
            HealthCheckTimeoutError: if the probe never passed within the timeout.
        """

        async def probe() -> bool:
            return bool(await self._provisioner.health_probe(deployment))

        if not await self._poll(probe, "Health check", deployment.deployment_id):
            raise HealthCheckTimeoutError(deployment.deployment_id, self.timeout_seconds)

    async def provision(self, deployment: Deployment, batch: BatchSpec) -> None:
        """Call ``deploy_batch`` until it succeeds.

        Raises:
            ProvisioningError: if every attempt failed within the timeout.
        """

        async def deploy() -> bool:
            await self._provisioner.deploy_batch(deployment, batch)
            return True

        if not await self._poll(deploy, "Provisioning", deployment.deployment_id):
            raise ProvisioningError(
                f"Provisioning batch {batch.batch_index + 1}/{batch.batch_count} "
                f"for deployment {deployment.deployment_id} did not succeed "
                f"within {self.timeout_seconds:g}s",
                deployment.deployment_id,
            )
