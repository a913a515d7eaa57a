"""
Shared configuration management for the ABAC decision engine.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Engine configuration, read from ABAC_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ABAC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="abac")

    # Policy
    policy_file: Optional[str] = Field(default=None, description="YAML/JSON rule set; bundled policy when unset")

    # Attribute store
    attribute_store: str = Field(default="memory", description="memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="abac")
    resolver_timeout_seconds: float = Field(default=0.5, gt=0)

    # Resilience
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_recovery_timeout: float = Field(default=30.0, gt=0)

    # Observability
    enable_metrics: bool = Field(default=True)


def get_config(**overrides) -> EngineConfig:
    """Get engine configuration, with explicit overrides taking precedence."""
    return EngineConfig(**overrides)
