# barbershop/config.py

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment or a local .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite:///./barber.db"

    # Security
    SECRET_KEY: str = "change-me-later"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Bootstrap admin, created on startup when both are set
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # Booking rules
    PAYMENT_TIMEOUT_MINUTES: int = 10
    SLOT_RETENTION_DAYS: int = 30
    REGENERATION_DAYS_AHEAD: int = 30

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    PAYMENT_CHECK_INTERVAL_SECONDS: int = 60
    EXPIRE_CHECK_INTERVAL_HOURS: int = 6
    CLEANUP_HOUR: int = 1
    REGENERATION_HOUR: int = 2

    # Development
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
