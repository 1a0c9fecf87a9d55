"""Centralized settings for the rollout engine.

Uses pydantic-settings to load from environment variables (prefixed ROLLOUT_)
with defaults matching the engine's built-in timings and thresholds.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Rollout engine settings loaded from environment variables."""

    # --- Rollout strategies (seconds unless noted) ---
    canary_traffic_increment: int = 10  # percent per step
    canary_promotion_delay_seconds: float = 300.0
    blue_green_switch_delay_seconds: float = 60.0
    rolling_batch_size: int = 1  # replicas per batch
    rolling_batch_delay_seconds: float = 10.0
    health_check_timeout_seconds: float = 300.0
    health_check_interval_seconds: float = 10.0

    # --- Health monitoring ---
    slo_check_interval_seconds: float = 60.0
    drift_check_interval_seconds: float = 300.0
    alert_cooldown_seconds: float = 900.0
    auto_rollback_enabled: bool = False
    auto_rollback_threshold: int = 3  # critical alerts
    auto_rollback_window_seconds: float = 1800.0

    # --- Failure handling ---
    auto_rollback_on_failure: bool = True

    # --- Database ---
    database_url: str = "sqlite:///rollout.db"
    database_echo: bool = False

    # --- Feature flags ---
    use_database: bool = False

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "ROLLOUT_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
