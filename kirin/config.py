"""
Configuration for the Kirin pipeline.

Provides environment-based configuration with Pydantic settings. Values
stored in the database (collector settings, processor config) override these
defaults at run time; these settings are the fallback and the wiring.
"""

from __future__ import annotations

import json
import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional
from urllib.parse import quote_plus

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant that summarizes conversations.
Please provide a concise summary of the following conversation, highlighting:
- Key topics discussed
- Important decisions or action items
- Any questions that need answers"""


def _split_csv(value):
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value or []


# Sections are settings classes themselves so the flat variable names
# (SLACK_BOT_TOKEN, OLLAMA_BASE_URL, ...) are read when the section is built
# from its default factory.
SECTION_CONFIG = SettingsConfigDict(
    env_file=".env",
    case_sensitive=False,
    extra="ignore",
    populate_by_name=True,
)


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SECTION_CONFIG

    url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "DATABASE__URL"),
        description="Full SQLAlchemy URL; overrides the individual parts below",
    )
    host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("DB_HOST", "DATABASE__HOST"),
    )
    port: int = Field(
        default=5432,
        validation_alias=AliasChoices("DB_PORT", "DATABASE__PORT"),
    )
    name: str = Field(
        default="kirin",
        validation_alias=AliasChoices("DB_NAME", "DATABASE__NAME"),
    )
    user: str = Field(
        default="postgres",
        validation_alias=AliasChoices("DB_USER", "DATABASE__USER"),
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("DB_PASSWORD", "DATABASE__PASSWORD"),
    )
    pool_size: int = Field(
        default=5,
        validation_alias=AliasChoices("DB_POOL_SIZE", "DATABASE__POOL_SIZE"),
    )
    max_overflow: int = Field(
        default=10,
        validation_alias=AliasChoices("DB_MAX_OVERFLOW", "DATABASE__MAX_OVERFLOW"),
    )

    def sqlalchemy_url(self) -> str:
        """Build SQLAlchemy database URL."""
        if self.url:
            return self.url

        user = quote_plus(self.user)
        pwd = quote_plus(self.password.get_secret_value())
        return f"postgresql+psycopg://{user}:{pwd}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SECTION_CONFIG

    host: str = Field(
        default="redis",
        validation_alias=AliasChoices("REDIS_HOST", "REDIS__HOST"),
    )
    port: int = Field(
        default=6379,
        validation_alias=AliasChoices("REDIS_PORT", "REDIS__PORT"),
    )
    db: int = Field(
        default=0,
        validation_alias=AliasChoices("REDIS_DB", "REDIS__DB"),
    )
    password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_PASSWORD", "REDIS__PASSWORD"),
    )

    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SlackSettings(BaseSettings):
    """Slack source defaults, used when the collector record leaves a value unset."""

    model_config = SECTION_CONFIG

    bot_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SLACK_BOT_TOKEN", "SLACK__BOT_TOKEN"),
    )
    channel_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        validation_alias=AliasChoices("SLACK_CHANNEL_IDS", "SLACK__CHANNEL_IDS"),
    )
    lookback_hours: float = Field(
        default=24,
        validation_alias=AliasChoices("SLACK_LOOKBACK_HOURS", "SLACK__LOOKBACK_HOURS"),
    )
    history_page_limit: int = Field(
        default=1000,
        validation_alias=AliasChoices("SLACK_HISTORY_PAGE_LIMIT", "SLACK__HISTORY_PAGE_LIMIT"),
    )
    replies_limit: int = Field(
        default=100,
        validation_alias=AliasChoices("SLACK_REPLIES_LIMIT", "SLACK__REPLIES_LIMIT"),
    )

    @field_validator("channel_ids", mode="before")
    @classmethod
    def parse_channel_ids(cls, v):
        return _split_csv(v)

    def token_value(self) -> Optional[str]:
        if self.bot_token is None:
            return None
        return self.bot_token.get_secret_value() or None


class OllamaSettings(BaseSettings):
    """Model endpoint defaults and the in-component retry policy."""

    model_config = SECTION_CONFIG

    base_url: str = Field(
        default="http://ollama:11434",
        validation_alias=AliasChoices("OLLAMA_BASE_URL", "OLLAMA__BASE_URL"),
    )
    model: str = Field(
        default="llama3.1:8b",
        validation_alias=AliasChoices("OLLAMA_MODEL", "OLLAMA__MODEL"),
    )
    timeout_seconds: float = Field(
        default=120.0,
        validation_alias=AliasChoices("OLLAMA_TIMEOUT_SECONDS", "OLLAMA__TIMEOUT_SECONDS"),
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("OLLAMA_MAX_ATTEMPTS", "OLLAMA__MAX_ATTEMPTS"),
    )
    retry_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        validation_alias=AliasChoices("OLLAMA_RETRY_DELAY_SECONDS", "OLLAMA__RETRY_DELAY_SECONDS"),
    )


class QueueSettings(BaseSettings):
    """Queue-level retry policy and per-stage worker limits."""

    model_config = SECTION_CONFIG

    max_attempts: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("QUEUE_MAX_ATTEMPTS", "QUEUE__MAX_ATTEMPTS"),
    )
    backoff_seconds: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("QUEUE_BACKOFF_SECONDS", "QUEUE__BACKOFF_SECONDS"),
    )
    backoff_max_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("QUEUE_BACKOFF_MAX_SECONDS", "QUEUE__BACKOFF_MAX_SECONDS"),
    )
    collect_rate_limit: str = Field(
        default="10/m",
        validation_alias=AliasChoices("COLLECT_RATE_LIMIT", "QUEUE__COLLECT_RATE_LIMIT"),
    )
    collect_concurrency: int = Field(
        default=1,
        validation_alias=AliasChoices("COLLECT_CONCURRENCY", "QUEUE__COLLECT_CONCURRENCY"),
    )
    process_concurrency: int = Field(
        default=2,
        validation_alias=AliasChoices("PROCESS_CONCURRENCY", "QUEUE__PROCESS_CONCURRENCY"),
    )
    output_concurrency: int = Field(
        default=5,
        validation_alias=AliasChoices("OUTPUT_CONCURRENCY", "QUEUE__OUTPUT_CONCURRENCY"),
    )
    collect_schedule_minutes: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices("COLLECT_SCHEDULE_MINUTES", "QUEUE__COLLECT_SCHEDULE_MINUTES"),
    )

    def concurrency_for(self, stage: str) -> int:
        return {
            "collect": self.collect_concurrency,
            "process": self.process_concurrency,
            "output": self.output_concurrency,
        }[stage]


class KirinSettings(BaseSettings):
    """Top-level configuration shared by every worker and the scheduler."""

    service_name: str = Field(
        default="kirin",
        validation_alias=AliasChoices("SERVICE_NAME"),
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "ENV"),
    )

    output_dir: Path = Field(
        default=Path("/app/output"),
        validation_alias=AliasChoices("OUTPUT_DIR"),
    )
    default_user_id: str = Field(
        default="default",
        validation_alias=AliasChoices("DEFAULT_USER_ID"),
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL"),
    )
    log_format: str = Field(
        default="json",
        validation_alias=AliasChoices("LOG_FORMAT"),
        description="Log format: 'json' or 'text'",
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    slack: SlackSettings = Field(default_factory=SlackSettings)
    ollama: OllamaSettings = Field(default_factory=OllamaSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)

    # Celery configuration
    celery_broker_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CELERY_BROKER_URL"),
    )
    celery_result_backend: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CELERY_RESULT_BACKEND"),
    )
    celery_always_eager: bool = Field(
        default=False,
        validation_alias=AliasChoices("CELERY_ALWAYS_EAGER"),
    )

    @property
    def effective_celery_broker_url(self) -> str:
        """Get Celery broker URL, defaulting to Redis."""
        return self.celery_broker_url or self.redis.url()

    @property
    def effective_celery_result_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis."""
        return self.celery_result_backend or self.redis.url()

    @property
    def database_url(self) -> str:
        """Get database connection string."""
        return self.database.sqlalchemy_url()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> KirinSettings:
    """Get cached settings instance."""
    return KirinSettings()


# Attributes every LogRecord carries; anything else on a record came from extra=
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any extra= fields merged in."""

    def __init__(self, service_name: str = "kirin"):
        super().__init__()
        self.service_name = service_name

    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
                log_record[key] = value
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def configure_logging(settings: Optional[KirinSettings] = None) -> None:
    """Configure logging based on settings.

    Args:
        settings: Optional settings instance, uses cached settings if not provided
    """
    if settings is None:
        settings = get_settings()

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter(settings.service_name))
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)

    root_logger.addHandler(handler)

    # Third-party HTTP clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
