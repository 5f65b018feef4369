"""Configuration settings for the relay service."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    """Relay settings loaded from ``TASKBOX_RELAY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TASKBOX_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared secret expected in the X-API-Key header
    api_key: str = Field(min_length=1)
    # Single origin allowed to call the relay from a browser
    cors_origin: str = "*"
    database_url: str = "sqlite:///./relay.db"
    debug: bool = False


@lru_cache
def get_relay_settings() -> RelaySettings:
    """Get cached settings instance."""
    return RelaySettings()
