from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    if not value:
        return None
    return float(value)


class Settings(BaseModel):
    # Database URL:
    # - Default for local dev: sqlite file in the project root (sms_gateway.db)
    # - Override in Docker / production using the DATABASE_URL env var
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'sms_gateway.db'}"
        )
    )

    # --- Twilio credentials (read from the environment, never hardcoded) ---
    twilio_account_sid: str | None = Field(default_factory=lambda: os.getenv("TWILIO_ACCOUNT_SID"))
    twilio_auth_token: str | None = Field(default_factory=lambda: os.getenv("TWILIO_AUTH_TOKEN"))
    twilio_from_number: str | None = Field(default_factory=lambda: os.getenv("TWILIO_FROM_NUMBER"))
    twilio_api_base_url: str = Field(
        default_factory=lambda: os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com")
    )

    # Deadline in seconds for each outbound callout; None means the SDK default.
    twilio_timeout_seconds: float | None = Field(
        default_factory=lambda: _env_float("TWILIO_TIMEOUT_SECONDS")
    )

    # --- Inbound webhook ---
    # Text sent back in the TwiML reply; unset means reply with an empty <Response />.
    auto_reply_text: str | None = Field(
        default_factory=lambda: os.getenv("AUTO_REPLY_TEXT") or None
    )
    validate_signatures: bool = Field(
        default_factory=lambda: _env_flag("VALIDATE_TWILIO_SIGNATURES")
    )

    admin_token: str | None = Field(default_factory=lambda: os.getenv("ADMIN_TOKEN"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """
    Set the root log level once at process start.

    The twilio http client logs full request URLs (including the account SID)
    at INFO, so it is held at WARNING.
    """
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
