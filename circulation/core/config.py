"""Core application configuration and settings.

Loads circulation policy, notification defaults and runtime flags from the
environment (and an optional ``.env`` file at the project root).
"""
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env")

NOTIFICATION_CHANNEL_NAMES = ("console", "email")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: Optional[bool] = Field(default=None, alias="LOG_JSON")

    # API Settings
    api_prefix: str = Field(default="", alias="API_PREFIX")

    # Circulation policy
    loan_period_days: int = Field(default=14, alias="LOAN_PERIOD_DAYS")
    seed_fixtures: bool = Field(default=True, alias="SEED_FIXTURES")

    # Notifications
    default_notification_channel: str = Field(
        default="console",
        alias="DEFAULT_NOTIFICATION_CHANNEL"
    )
    library_sender_email: str = Field(
        default="library@example.com",
        alias="LIBRARY_SENDER_EMAIL"
    )
    isolate_subscriber_failures: bool = Field(
        default=True,
        alias="ISOLATE_SUBSCRIBER_FAILURES"
    )

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True
        extra = "ignore"

    @field_validator("loan_period_days")
    @classmethod
    def _positive_loan_period(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("LOAN_PERIOD_DAYS must be a positive number of days")
        return value

    @field_validator("default_notification_channel")
    @classmethod
    def _known_channel(cls, value: str) -> str:
        name = value.strip().lower()
        if name not in NOTIFICATION_CHANNEL_NAMES:
            raise ValueError(
                f"DEFAULT_NOTIFICATION_CHANNEL must be one of {NOTIFICATION_CHANNEL_NAMES}, got {value!r}"
            )
        return name

    @property
    def use_json_logs(self) -> bool:
        """LOG_JSON when set, otherwise JSON only in production."""
        if self.log_json is not None:
            return self.log_json
        return self.environment == "production"


# Global settings instance
settings = Settings()
