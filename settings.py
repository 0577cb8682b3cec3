# settings.py
from __future__ import annotations

import os
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_JWT_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # Storage
    # -----------------------
    DATABASE_URL: str = ""
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DB_POOL_MAX: int = 10

    # -----------------------
    # Client address
    # Only honor X-Forwarded-For when a proxy we control sets it.
    # -----------------------
    TRUST_PROXY_HEADERS: bool = False

    # -----------------------
    # JWT (admin + creator sessions are issued elsewhere)
    # -----------------------
    JWT_SECRET: str = Field(default=_DEFAULT_JWT_SECRET, min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Payment gateway (Razorpay)
    # -----------------------
    GATEWAY_MODE: Literal["sandbox", "real"] = "sandbox"
    GATEWAY_BASE_URL: str = "https://api.razorpay.com/v1"
    GATEWAY_HTTP_TIMEOUT_S: float = 15.0
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "INR"

    # -----------------------
    # Payouts
    # -----------------------
    DEFAULT_PAYOUT_THRESHOLD_CENTS: int = Field(default=30000, ge=1)

    # -----------------------
    # Outbound notifications
    # -----------------------
    EVENT_WEBHOOK_URL: str = ""
    NOTIFY_HTTP_TIMEOUT_S: float = 5.0
    DISPATCH_MAX_WORKERS: int = 4


settings = Settings()


def webhook_secret() -> str | None:
    # env wins so operators can rotate without a restart
    value = os.getenv("RAZORPAY_WEBHOOK_SECRET")
    if value and value.strip():
        return value.strip()
    configured = (settings.RAZORPAY_WEBHOOK_SECRET or "").strip()
    return configured or None


def validate_env_settings() -> None:
    env = (settings.ENV or "dev").strip().lower()
    if env not in {"staging", "prod", "production"}:
        return

    missing: list[str] = []
    if settings.STORE_BACKEND == "postgres" and not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")
    if settings.JWT_SECRET == _DEFAULT_JWT_SECRET:
        missing.append("JWT_SECRET")
    if not webhook_secret():
        missing.append("RAZORPAY_WEBHOOK_SECRET")
    if settings.GATEWAY_MODE == "real":
        if not settings.RAZORPAY_KEY_ID:
            missing.append("RAZORPAY_KEY_ID")
        if not settings.RAZORPAY_KEY_SECRET:
            missing.append("RAZORPAY_KEY_SECRET")

    if missing:
        raise RuntimeError("Missing or insecure settings: " + ", ".join(missing))
