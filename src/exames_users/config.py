"""
Exames Users - Service Configuration.

Externalized configuration loaded from environment variables.

Architecture Layer: Infrastructure
Principles: Configuration Externalization, Type Safety, Validation
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

logger = structlog.get_logger(__name__)

_ASYNC_DRIVERS = ("sqlite+aiosqlite", "postgresql+asyncpg")


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    url: str = Field(default="sqlite+aiosqlite:///./exames.db", description="Async SQLAlchemy URL")
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_size: int = Field(default=5, ge=1, le=100)
    pool_timeout: int = Field(default=30, ge=1)

    model_config = SettingsConfigDict(env_prefix="EXAMES_DB_", env_file=".env", extra="ignore")

    @field_validator("url")
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        """Repositories are async, so the URL must name an async driver."""
        if not v.startswith(_ASYNC_DRIVERS):
            raise ValueError(f"Database URL must use one of {', '.join(_ASYNC_DRIVERS)}")
        return v


class ConsentPolicyConfig(BaseSettings):
    """LGPD consent lifetime policy."""

    max_age_months: int = Field(default=24, ge=1, description="Months until a consent expires")
    renewal_threshold_months: int = Field(default=18, ge=1, description="Months until renewal is due")

    model_config = SettingsConfigDict(env_prefix="EXAMES_CONSENT_", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def validate_thresholds(self) -> ConsentPolicyConfig:
        if self.renewal_threshold_months > self.max_age_months:
            raise ValueError("renewal_threshold_months cannot exceed max_age_months")
        return self


class ExamesSettings(BaseSettings):
    """Top-level settings for the application core."""

    service_name: str = Field(default="exames-core")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development"
    )
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    use_database: bool = Field(
        default=False,
        description="Use SQLAlchemy repositories (False = in-memory)",
    )
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    consent_policy: ConsentPolicyConfig = Field(default_factory=ConsentPolicyConfig)

    model_config = SettingsConfigDict(env_prefix="EXAMES_", env_file=".env", extra="ignore")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> ExamesSettings:
    """Cached settings instance."""
    settings = ExamesSettings()
    logger.debug("settings_loaded", environment=settings.environment,
                 use_database=settings.use_database)
    return settings
