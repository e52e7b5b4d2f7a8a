"""
Shared configuration management for the RiftRadar lookup layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOOKUP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache tiers
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/riftradar")
    postgres_min_pool: int = Field(default=2, ge=1)
    postgres_max_pool: int = Field(default=10, ge=1)

    # Upstream (Riot API)
    riot_api_key: str = Field(default="")
    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    rate_limit_per_second: int = Field(default=20, ge=1)
    rate_limit_per_two_minutes: int = Field(default=100, ge=1)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_seconds: float = Field(default=30.0, gt=0)

    # Bulk lookups
    bulk_max_concurrency: int = Field(default=8, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "lookup"
    port: int = 8020
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
