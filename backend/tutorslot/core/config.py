# backend/tutorslot/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")

    # Persistence
    database_url: str = Field(
        default="sqlite:///./tutorslot.db",
        description="SQLAlchemy URL of the booking store",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Optional Redis URL for the cross-process per-teacher booking mutex",
    )

    # Slot generation
    default_timezone: str = Field(default="UTC", description="Timezone for teachers without one")
    default_horizon_days: int = Field(
        default=28,
        description="Number of days ahead slots are generated for",
        ge=0,
        le=365,
    )
    default_duration_minutes: int = Field(default=60, ge=5, le=480)

    # Booking lifecycle
    default_currency: str = Field(default="eur")
    max_alternatives: int = Field(
        default=5,
        ge=1,
        description="Maximum number of alternative times a teacher may propose",
    )
    request_expiry_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Age after which unanswered requests may be expired; None disables expiry",
    )

    # Locking
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    lock_ttl_seconds: int = Field(default=90, ge=1)
    lock_namespace: str = Field(default="tutorslot")

    # Observability
    slow_operation_seconds: float = Field(default=1.0, gt=0)
    log_level: str = Field(default="INFO")

    # Payments
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe API key used by the payment gateway adapter",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        env_prefix="TUTORSLOT_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("default_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        normalized = value.strip().lower()
        if len(normalized) != 3:
            raise ValueError("default_currency must be a three-letter ISO code")
        return normalized

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production", "live"}


def configure_logging(level: Optional[str] = None) -> None:
    """Install the process-wide log format used by the booking services."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


settings = Settings()
