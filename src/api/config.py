"""API Configuration."""

from dataclasses import dataclass, field


@dataclass
class APIConfig:
    """Core API settings."""

    title: str = "Rollout Engine API"
    version: str = "1.0.0"
    description: str = "Model deployment rollout, health monitoring and rollback"
    prefix: str = "/api/v1"
    docs_url: str = "/docs"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    cors_methods: list[str] = field(default_factory=lambda: ["GET", "POST", "PUT", "OPTIONS"])
    cors_headers: list[str] = field(default_factory=lambda: ["*"])
    max_page_size: int = 100
    default_page_size: int = 20
    default_initiator: str = "operator"


DEFAULT_API_CONFIG = APIConfig()
