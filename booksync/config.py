"""
Configuration management for the book sync service.
Values come from environment variables (optionally loaded from a .env file).
"""

import os
import secrets
from typing import Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()


class SyncConfig(BaseModel):
    """Settings for the book sync service, remote store and local database."""

    # Remote store settings
    remote_url: Optional[str] = Field(default=None, description="Remote store (PostgREST) base URL")
    remote_api_key: Optional[str] = Field(default=None, description="Publishable API key for the remote store")
    request_timeout: int = Field(default=30, description="HTTP timeout in seconds for remote calls")

    # Capacity settings
    is_premium: bool = Field(default=False, description="Premium tier (unbounded cloud capacity)")
    free_cloud_sync_limit: int = Field(default=50, description="Records eligible for cloud sync on the free tier")

    # Sync cadence
    min_sync_interval_seconds: int = Field(default=30, description="Cooldown between non-full syncs")
    sync_interval_minutes: int = Field(default=15, description="Periodic incremental sync interval in minutes")
    connectivity_check_seconds: int = Field(default=60, description="Interval between connectivity probes")

    # Application settings
    database_url: str = Field(
        default="sqlite:///data/booksync.db",
        description="Local database connection URL"
    )
    secret_key: str = Field(
        default_factory=lambda: os.getenv("SECRET_KEY", secrets.token_hex(32)),
        description="Secret key for Flask sessions"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    port: int = Field(default=5000, description="HTTP port for the service")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def get_config_from_env() -> SyncConfig:
    """Load configuration from environment variables."""
    return SyncConfig(
        remote_url=os.getenv("REMOTE_URL"),
        remote_api_key=os.getenv("REMOTE_API_KEY"),
        request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
        is_premium=_env_flag("IS_PREMIUM"),
        free_cloud_sync_limit=int(os.getenv("FREE_CLOUD_SYNC_LIMIT", "50")),
        min_sync_interval_seconds=int(os.getenv("MIN_SYNC_INTERVAL_SECONDS", "30")),
        sync_interval_minutes=int(os.getenv("SYNC_INTERVAL_MINUTES", "15")),
        connectivity_check_seconds=int(os.getenv("CONNECTIVITY_CHECK_SECONDS", "60")),
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/booksync.db"),
        secret_key=os.getenv("SECRET_KEY", secrets.token_hex(32)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", "5000")),
    )


def is_configured(config: SyncConfig) -> bool:
    """Check if the remote store is configured."""
    return bool(config.remote_url and config.remote_api_key)
