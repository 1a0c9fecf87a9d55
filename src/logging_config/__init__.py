"""Structured Logging for the rollout engine.

JSON or console output, deployment-scoped context and coroutine timing.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import DeploymentContext, get_context_dict, get_deployment_id
from src.logging_config.performance import log_duration
from src.logging_config.setup import configure_logging, resolve_config

__all__ = [
    "DeploymentContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "configure_logging",
    "get_context_dict",
    "get_deployment_id",
    "log_duration",
    "resolve_config",
]
