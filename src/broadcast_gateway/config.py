"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    api_token: str
    admin_token: str
    transport_bridge_url: str
    transport_bridge_token: str | None = None
    default_region: str = "IN"
    pairing_timeout_seconds: float = 30.0
    media_dir: str = "./whatsapp"
    broadcast_concurrency: int | None = None
    log_failed_sends: bool = False
    resume_on_startup: bool = True
    message_history_limit: int = 100
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
