"""
Shared configuration management for the Proxy Grid gateway.
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXYGRID_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    log_format: Literal["json", "console"] = "json"

    # Network binding
    host: str = "0.0.0.0"
    port: int = 8000


class GatewayConfig(BaseConfig):
    """Configuration consumed by the gateway at process start."""

    service_name: str = "proxygrid"

    # Upstream aggregation backend
    backend_url: str = Field(
        default="http://localhost:8317",
        validation_alias=AliasChoices("PROXYGRID_BACKEND_URL", "CLIPROXYAPI_URL", "backend_url"),
    )
    secret: str = ""
    route_prefix: str = "/api/proxygrid"
    backend_prefix: str = "/v1/proxygrid"
    upstream_timeout: float = 30.0
    user_agent: str = "proxygrid-gateway/1.0"

    # Rate limiting
    rate_limit_namespace: str = "proxygrid"
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window_ms: int = Field(default=60_000, ge=1)
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    rate_limit_max_keys: int = 10_000
    redis_url: str = "redis://localhost:6379/0"

    @property
    def is_development(self) -> bool:
        return self.env.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


def get_config(**overrides) -> GatewayConfig:
    """Get gateway configuration, applying explicit overrides on top of the environment."""
    return GatewayConfig(**overrides)
