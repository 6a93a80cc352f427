"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./rms.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, description="Token lifetime in minutes")
    auth_cookie_name: str = Field(default="token", description="Name of the HTTP-only auth cookie")
    auth_cookie_secure: bool = Field(default=False, description="Send the auth cookie over HTTPS only")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    resource_type_cache_ttl: int = Field(default=300, description="TTL (s) for the cached resource type list")
    log_dir: str = Field(default="logs", description="Directory receiving the per-service audit logs")

    rabbitmq_host: Optional[str] = Field(
        default=None,
        description="RabbitMQ host for booking notifications. Publishing is skipped when unset.",
    )
    booking_events_queue: str = Field(default="booking_events", description="Queue receiving booking events")

    default_admin_email: str = Field(default="admin@rms.com", description="Seeded administrator email")
    default_admin_password: str = Field(default="Admin@123", description="Seeded administrator password")

    users_service_port: int = 8001
    inventory_service_port: int = 8002
    bookings_service_port: int = 8003
    maintenance_service_port: int = 8004


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
