"""FastAPI Application Factory.

Creates the rollout engine API: CORS, engine error handling, the
deployments router and a liveness endpoint. The orchestrator is attached to
``app.state`` and shut down with the application.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.dependencies import build_orchestrator
from src.api.errors import register_exception_handlers
from src.api.models import HealthResponse
from src.api.routes import deployments
from src.deployment import DeploymentOrchestrator
from src.logging_config import configure_logging

logger = logging.getLogger(__name__)


# ── Lifespan (startup / shutdown) ────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: logging at startup, engine shutdown at exit."""
    # ── Startup ──
    if app.state.configure_logging:
        configure_logging()
        logger.info("Structured logging initialized")
    logger.info("Rollout API starting up")
    yield
    # ── Shutdown ──
    await app.state.orchestrator.shutdown()
    logger.info("Rollout API shutting down")


# ── App Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[APIConfig] = None,
    orchestrator: Optional[DeploymentOrchestrator] = None,
    setup_logging: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: API configuration. Uses defaults if not provided.
        orchestrator: Engine instance; built from settings if not provided.
        setup_logging: Install the structured log handler at startup.
    """
    config = config or DEFAULT_API_CONFIG

    app = FastAPI(
        title=config.title,
        version=config.version,
        description=config.description,
        docs_url=config.docs_url,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator or build_orchestrator()
    app.state.configure_logging = setup_logging

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=config.cors_methods,
        allow_headers=config.cors_headers,
    )
    register_exception_handlers(app)

    # ── Health check ─────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        summary = app.state.orchestrator.get_summary()
        return HealthResponse(
            status="ok",
            version=config.version,
            timestamp=datetime.now(timezone.utc),
            monitored_deployments=summary["monitored"],
            running_rollouts=summary["running_rollouts"],
        )

    # ── Route modules ────────────────────────────────────────────

    app.include_router(deployments.router, prefix=config.prefix)

    logger.info("Rollout API v%s initialized", config.version)
    return app
