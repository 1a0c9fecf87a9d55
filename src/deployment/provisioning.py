"""Deployment Rollout & Rollback Engine — Provisioner Interface."""

import logging
from dataclasses import dataclass
from typing import Protocol

from .models import Deployment

logger = logging.getLogger(__name__)


@dataclass
class BatchSpec:
    """One slice of a deployment's replica set."""

    replicas: int
    batch_index: int = 0
    batch_count: int = 1


class Provisioner(Protocol):
    """Creates workload replicas and reports whether they are healthy."""

    async def deploy_batch(self, deployment: Deployment, batch: BatchSpec) -> None:
        ...

    async def health_probe(self, deployment: Deployment) -> bool:
        ...


class NoopProvisioner:
    """Provisioner for workloads managed out of band.

    Batches are accepted immediately and every probe reports healthy.
    """

    async def deploy_batch(self, deployment: Deployment, batch: BatchSpec) -> None:
        logger.debug(
            "Accepted batch %d/%d (%d replicas) for %s",
            batch.batch_index + 1,
            batch.batch_count,
            batch.replicas,
            deployment.deployment_id,
        )

    async def health_probe(self, deployment: Deployment) -> bool:
        return True
