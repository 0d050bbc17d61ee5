"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development: with no
provider credentials configured, every outbound channel runs in
simulation mode.

Usage:
    from backend.app.core.config import settings
    print(settings.DISPATCH_MAX_CONCURRENCY)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Citizen Notification Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL
    PUBLIC_BASE_URL: str = "https://rindwa.com"

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Push (Firebase Cloud Messaging) ──
    FCM_SERVER_KEY: Optional[str] = None  # unset → simulation mode
    FCM_ENDPOINT: str = "https://fcm.googleapis.com/fcm/send"

    # ── Email ──
    EMAIL_PROVIDER: str = "simulation"  # simulation | resend
    RESEND_API_KEY: Optional[str] = None
    RESEND_ENDPOINT: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "Rindwa Emergency Platform <onboarding@resend.dev>"

    # ── SMS ──
    SMS_PROVIDER: str = "simulation"  # simulation | twilio
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_API_BASE: str = "https://api.twilio.com/2010-04-01"

    # ── Dispatch engine ──
    DISPATCH_MAX_CONCURRENCY: int = 20  # in-flight channel sends per event loop
    CHANNEL_SEND_TIMEOUT_SECONDS: float = 10.0
    RETENTION_DAYS: int = 7
    DEFAULT_TIMEZONE: str = "Africa/Kigali"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
