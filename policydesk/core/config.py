from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment."""

    app_name: str = Field(default="PolicyDesk", validation_alias="APP_NAME")
    environment: str = Field(default="local", validation_alias="APP_ENV")
    version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Hosted data-access service (Supabase REST + auth)
    supabase_url: str = Field(
        default="http://localhost:54321",
        validation_alias="SUPABASE_URL",
    )
    supabase_key: str = Field(default="", validation_alias="SUPABASE_KEY")
    supabase_jwt_secret: str = Field(default="", validation_alias="SUPABASE_JWT_SECRET")
    http_timeout_seconds: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    password_reset_redirect_url: str = Field(
        default="http://localhost:3000/forgot-password",
        validation_alias="PASSWORD_RESET_REDIRECT_URL",
    )

    # Encrypted client-side session store
    session_store_path: str = Field(
        default=".policydesk/session.bin",
        validation_alias="SESSION_STORE_PATH",
    )
    session_encryption_key: str = Field(default="", validation_alias="SESSION_ENCRYPTION_KEY")

    default_page_size: int = Field(default=10, validation_alias="DEFAULT_PAGE_SIZE")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
