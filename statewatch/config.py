"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "statewatch"
    debug: bool = False
    log_level: str = "INFO"

    # Watches without an explicit predicate compare against this state
    default_target_state: str = "on"

    # Threshold bounds for watches opened over the API
    default_threshold_seconds: float = 60.0
    max_threshold_seconds: float = 86400.0

    model_config = {"env_prefix": "STATEWATCH_"}


settings = Settings()
