"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
import uuid
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StackEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with STK_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="STK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: StackEnv = StackEnv.DEV
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://stk_superuser@localhost:5432/stk_db"
    database_pool_size: int = Field(default=10, ge=1)
    database_max_overflow: int = Field(default=20, ge=0)
    # PostgreSQL session timeouts in milliseconds; unset means no timeout
    statement_timeout_ms: int | None = Field(default=None, ge=1)
    lock_timeout_ms: int | None = Field(default=None, ge=1)

    # Schema whose base tables receive convention triggers
    convention_schema: str = "public"

    # Generic list() bounds
    default_list_limit: int = Field(default=10, ge=1)
    max_list_limit: int = Field(default=500, ge=1)

    # Acting identity stamped into created_by_uu / updated_by_uu
    actor_uu: uuid.UUID | None = None

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator("convention_schema")
    @classmethod
    def schema_is_identifier(cls, v: str) -> str:
        from stk_engine.provisioning.ddl import validate_identifier

        return validate_identifier(v, kind="schema")

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return level


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
