import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    ⚠️ WARNING: SQLite is NOT suitable for production deployments!
    - Data will be LOST on container rebuilds
    - Use PostgreSQL by setting DATABASE_URL environment variable
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info("Using DATABASE_URL from environment")
        return db_url

    # Use absolute path for SQLite (LOCAL DEVELOPMENT ONLY)
    db_path = Path(__file__).parent.parent.parent / "kettlebell.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"⚠️ Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    telegram_bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    telegram_api_url: str = Field(default="https://api.telegram.org", validation_alias="TELEGRAM_API_URL")
    bot_mode: str = Field(
        default="webhook",
        validation_alias="BOT_MODE",
        description="How updates are received: 'webhook' or 'polling'",
    )
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-5-mini", validation_alias="OPENAI_MODEL")
    transcription_model: str = Field(default="whisper-1", validation_alias="TRANSCRIPTION_MODEL")
    transcription_language: str = Field(default="ru", validation_alias="TRANSCRIPTION_LANGUAGE")
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    free_monthly_limit: int = Field(default=10, validation_alias="FREE_MONTHLY_LIMIT", ge=0)
    quota_window_days: int = Field(
        default=30,
        validation_alias="QUOTA_WINDOW_DAYS",
        ge=1,
        description="Rolling window used for the free-tier workout quota",
    )
    ai_max_attempts: int = Field(default=3, validation_alias="AI_MAX_ATTEMPTS", ge=1)
    retry_initial_delay_seconds: float = Field(default=1.0, validation_alias="RETRY_INITIAL_DELAY_SECONDS", ge=0.0)
    retry_backoff_factor: float = Field(default=2.0, validation_alias="RETRY_BACKOFF_FACTOR", ge=1.0)
    reminder_interval_seconds: int = Field(default=60, validation_alias="REMINDER_INTERVAL_SECONDS", ge=1)
    polling_timeout_seconds: int = Field(default=30, validation_alias="POLLING_TIMEOUT_SECONDS", ge=0)
    polling_error_delay_seconds: float = Field(default=5.0, validation_alias="POLLING_ERROR_DELAY_SECONDS", ge=0.0)
    user_timezone: str = Field(
        default="Europe/Moscow",
        validation_alias="USER_TIMEZONE",
        description="Timezone used to interpret schedule input typed by users",
    )
    admin_user_ids: str = Field(default="", validation_alias="ADMIN_USER_IDS")  # Comma-separated list
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("bot_mode")
    @classmethod
    def validate_bot_mode(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in {"webhook", "polling"}:
            logger.warning(f"Invalid BOT_MODE '{value}'. Expected 'webhook' or 'polling'. Defaulting to webhook.")
            return "webhook"
        return lowered

    @field_validator("telegram_bot_token")
    @classmethod
    def validate_bot_token(cls, value: str) -> str:
        """Warn when the bot token is missing.

        Empty values are allowed for local development and tests; the webhook
        will reject every request and outbound calls will fail.
        """
        if not value:
            logger.warning("⚠️ TELEGRAM_BOT_TOKEN is not set. The bot will not be able to receive or send messages.")
        return value

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, value: str) -> str:
        if not value:
            logger.warning("⚠️ OPENAI_API_KEY is not set. Workout generation and feedback analysis will not work.")
        return value

    @property
    def admin_ids(self) -> set[int]:
        """Parse ADMIN_USER_IDS into a set of numeric user ids."""
        ids: set[int] = set()
        for raw in self.admin_user_ids.split(","):
            raw = raw.strip()
            if raw.lstrip("-").isdigit():
                ids.add(int(raw))
        return ids


settings = Settings()
