"""Application configuration management."""
from __future__ import annotations

import datetime as dt
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application settings loaded from the environment."""

    db_url: str = Field(validation_alias="DB_URL")
    jwt_secret: SecretStr = Field(validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    env: Literal["local", "dev", "prod"] = Field(default="local", validation_alias="ENV")
    git_sha: str | None = Field(default=None, validation_alias="GIT_SHA")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000"],
        validation_alias="CORS_ALLOWED_ORIGINS",
    )
    public_base_url: str = Field(default="http://localhost:3000", validation_alias="PUBLIC_BASE_URL")
    cron_secret: SecretStr | None = Field(default=None, validation_alias="CRON_SECRET")
    deletion_webhook_url: str | None = Field(default=None, validation_alias="DELETION_WEBHOOK_URL")
    deletion_completed_webhook_url: str | None = Field(
        default=None,
        validation_alias="DELETION_COMPLETED_WEBHOOK_URL",
    )
    webhook_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="WEBHOOK_TIMEOUT_SECONDS")
    webhook_max_retries: int = Field(default=3, ge=0, validation_alias="WEBHOOK_MAX_RETRIES")
    delete_confirmation_window_hours: float = Field(
        default=24,
        gt=0,
        validation_alias="DELETE_CONFIRMATION_WINDOW_HOURS",
    )
    delete_execution_delay_hours: float = Field(
        default=1,
        gt=0,
        validation_alias="DELETE_EXECUTION_DELAY_HOURS",
    )
    token_attempt_limit: int = Field(default=20, ge=1, validation_alias="TOKEN_ATTEMPT_LIMIT")
    token_attempt_window_minutes: int = Field(default=15, ge=1, validation_alias="TOKEN_ATTEMPT_WINDOW_MINUTES")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors(cls, value: object) -> list[str]:
        if isinstance(value, str) and not value.lstrip().startswith("["):
            origins = [item.strip() for item in value.split(",") if item.strip()]
            return origins or ["http://localhost", "http://localhost:3000"]
        return value  # type: ignore[return-value]

    @field_validator("deletion_webhook_url", "deletion_completed_webhook_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_local(self) -> bool:
        return self.env == "local"

    @property
    def confirmation_window(self) -> dt.timedelta:
        return dt.timedelta(hours=self.delete_confirmation_window_hours)

    @property
    def execution_delay(self) -> dt.timedelta:
        return dt.timedelta(hours=self.delete_execution_delay_hours)

    def require_production_secrets(self) -> None:
        if self.is_local:
            return
        if self.jwt_secret.get_secret_value() in {"", "CHANGE_ME"}:
            raise ValueError("JWT_SECRET must be set to a secure value in non-local environments.")
        if self.cron_secret is None or not self.cron_secret.get_secret_value():
            raise ValueError("CRON_SECRET must be set in non-local environments.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    settings = Settings()
    settings.require_production_secrets()
    return settings
