"""Deployment Rollout & Rollback Engine — Traffic Management."""

import logging
from typing import List, Optional

from .models import TrafficSplit
from .store import DeploymentFilter, DeploymentStore

logger = logging.getLogger(__name__)


class TrafficManager:
    """Records routing weights for deployments.

    The manager only asserts a deployment's own share; the routing layer
    that consumes the splits decides what the remainder goes to. When a
    deployment takes all traffic, the open splits of every other deployment
    in its environment are completed.
    """

    def __init__(self, store: DeploymentStore):
        self._store = store

    def shift_traffic(self, deployment_id: str, percentage: int) -> TrafficSplit:
        """Route ``percentage`` of traffic to a deployment (clamped to 0..100)."""
        clamped = max(0, min(100, int(percentage)))
        if clamped != percentage:
            logger.warning(
                "Clamped traffic percentage for %s from %s to %d",
                deployment_id,
                percentage,
                clamped,
            )
        split = self._store.create_traffic_split(deployment_id, clamped)
        logger.info("Traffic for %s set to %d%%", deployment_id, clamped)
        if clamped == 100:
            self.retire_others(deployment_id)
        return split

    def retire_others(self, deployment_id: str) -> List[TrafficSplit]:
        """Complete the open splits of the deployment's environment peers."""
        deployment = self._store.get_deployment(deployment_id)
        if deployment is None:
            return []
        peers = self._store.list_deployments(
            DeploymentFilter(environment=deployment.environment)
        )
        completed = []
        for peer in peers:
            if peer.deployment_id == deployment_id:
                continue
            for split in self._store.list_traffic_splits(peer.deployment_id):
                if split.completed_at is None:
                    completed.append(self._store.complete_traffic_split(split.split_id))
        if completed:
            logger.info(
                "Completed %d traffic split(s) superseded by %s",
                len(completed),
                deployment_id,
            )
        return completed

    def get_splits(self, deployment_id: str) -> List[TrafficSplit]:
        """Return the deployment's traffic history, oldest first."""
        return self._store.list_traffic_splits(deployment_id)

    def current_percentage(self, deployment_id: str) -> Optional[int]:
        """Latest percentage assigned to a deployment, or None if never set."""
        splits = self.get_splits(deployment_id)
        return splits[-1].percentage if splits else None
