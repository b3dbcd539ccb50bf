"""
Shared configuration management for the Access Exceptions Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Rule store (Gateway rules API)
    rule_store_api_url: str = Field(default="https://api.cloudflare.com/client/v4")
    rule_store_account_id: Optional[str] = Field(default=None)
    rule_store_auth_email: Optional[str] = Field(default=None)
    rule_store_auth_key: Optional[str] = Field(default=None)
    rule_store_timeout_seconds: float = Field(default=10.0)

    # Tracking store
    redis_url: Optional[str] = Field(default="redis://localhost:6379/0")
    tracking_key_prefix: str = Field(default="gateway_rule:")
    tracking_scan_count: int = Field(default=100)

    # Sweep
    sweep_enabled: bool = Field(default=True)
    sweep_interval_seconds: float = Field(default=86400.0)
    # 0 leaves the reset fan-out unbounded
    sweep_concurrency: int = Field(default=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
