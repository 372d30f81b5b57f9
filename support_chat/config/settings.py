import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is meant for local development only. Set DATABASE_URL to a
    PostgreSQL connection string for any deployment that must keep history.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info("Using DATABASE_URL from environment")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "support_chat.db"
    db_url = f"sqlite:///{db_path.resolve()}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    llm_model: str = Field(default="gpt-4o-mini", validation_alias="LLM_MODEL")
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    frontend_url: str = Field(
        default="http://localhost:5173",
        validation_alias="FRONTEND_URL",
        description="Origin allowed by CORS",
    )
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    max_message_length: int = Field(
        default=5000,
        validation_alias="MAX_MESSAGE_LENGTH",
        description="Maximum accepted chat message length in characters",
    )
    rate_limit_ip_per_minute: int = Field(default=20, validation_alias="RATE_LIMIT_IP_PER_MINUTE")
    rate_limit_session_per_minute: int = Field(default=5, validation_alias="RATE_LIMIT_SESSION_PER_MINUTE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(sorted(valid_levels))}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, value: str) -> str:
        """Validate the model provider name."""
        lower_value = value.lower().strip()
        if lower_value not in {"openai", "google"}:
            raise ValueError(f"LLM_PROVIDER must be 'openai' or 'google', got: {value}")
        return lower_value

    @field_validator("max_message_length", "rate_limit_ip_per_minute", "rate_limit_session_per_minute")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be a positive integer")
        return value


def get_settings() -> Settings:
    """Load settings from the environment.

    Called by the process entry point; nothing in the core reads settings directly.
    """
    settings = Settings()
    if not settings.openai_api_key and settings.llm_provider == "openai":
        logger.warning("OPENAI_API_KEY is not set. Chat replies will fall back to the apology message.")
    if not settings.gemini_api_key and settings.llm_provider == "google":
        logger.warning("GEMINI_API_KEY is not set. Chat replies will fall back to the apology message.")
    return settings
