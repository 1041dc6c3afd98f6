"""
Shared configuration management for the Offline Bundle service.
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

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Deployment scope: every in-scope resource address starts with this.
    # Required by the offline service; it must not point back at the service.
    scope_url: str = Field(default="")
    cache_name_prefix: str = Field(default="offline")
    manifest_path: str = Field(default="offline.js")
    # Main document for the first-load build. No session is live at startup,
    # so without this the navigation document is only cached from the next
    # manifest version on.
    main_page_url: Optional[str] = Field(default=None)

    # Sessions
    session_idle_ttl_seconds: float = Field(default=1800.0, ge=0.0)
    max_sessions: int = Field(default=10_000, ge=1)

    # Cache store
    store_backend: str = Field(default="memory")
    store_namespace: str = Field(default="offline")

    # Build and update behaviour
    build_grace_period_seconds: float = Field(default=1.0, ge=0.0)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0.0)
    update_check_interval_seconds: float = Field(default=0.0, ge=0.0)
    activate_on_startup: bool = Field(default=True)


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
