"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Runtime environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("GEODIAG_ENV", "dev").lower()


class Settings(BaseSettings):
    """Environment configuration for the Geodiag backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///geodiag.db"
    SECRET_KEY: str = "change-me"
    ALLOW_DB_CREATE_ALL: bool = False
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://app.geodiag.fr",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    # --- Payment gateway -------------------------------------------------
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    CHECKOUT_CURRENCY: str = "eur"
    FRONTEND_URL: str = "http://localhost:3000"

    # --- Licenses --------------------------------------------------------
    QR_CODE_PREFIX: str = "LIC-"

    # --- Job queue / worker ----------------------------------------------
    WORKER_ENABLED: bool = False
    WORKER_POLL_SECONDS: int = 5
    JOB_MAX_ATTEMPTS: int = 5
    JOB_BACKOFF_SECONDS: int = 30
    JOB_LOCK_SECONDS: int = 300
    PAYMENT_JOB_CONCURRENCY: int = 1
    NOTIFICATION_JOB_CONCURRENCY: int = 2
    NOTIFICATION_MODE: Literal["queued", "inline"] = "queued"

    # --- Email -----------------------------------------------------------
    EMAIL_HOST: str = "localhost"
    EMAIL_PORT: int = 587
    EMAIL_USER: str | None = None
    EMAIL_PASSWORD: str | None = None
    EMAIL_FROM: str = "no-reply@geodiag.fr"
    EMAIL_TIMEOUT_SECONDS: int = 15

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty Stripe secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("FRONTEND_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class AppInfo(BaseModel):
    name: str = "geodiag-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
