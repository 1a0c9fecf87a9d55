"""FastAPI Dependencies.

The orchestrator lives on ``app.state`` so tests can inject their own; the
initiator of an operation is taken from the ``X-User-Id`` header.
"""

import logging
from typing import Optional

from fastapi import Header, Request

from src.api.config import DEFAULT_API_CONFIG
from src.deployment import DeploymentOrchestrator, OrchestratorConfig
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Optional[Settings] = None) -> DeploymentOrchestrator:
    """Build the orchestrator described by ``settings``.

    Uses the SQL store when ``use_database`` is set, the in-memory store
    otherwise.
    """
    settings = settings or get_settings()
    config = OrchestratorConfig.from_settings(settings)
    store = None
    if settings.use_database:
        from src.db.engine import get_sync_session_factory
        from src.deployment.sql_store import SqlDeploymentStore

        store = SqlDeploymentStore(get_sync_session_factory())
        logger.info("Using SQL deployment store")
    return DeploymentOrchestrator(store=store, config=config)


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    """Return the orchestrator attached to the running application."""
    return request.app.state.orchestrator


async def get_initiator(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Identity recorded as ``deployed_by`` / ``initiated_by``."""
    return x_user_id or DEFAULT_API_CONFIG.default_initiator
