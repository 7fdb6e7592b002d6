"""
Configuration module for the ECOTEC data client.

This module provides centralized configuration management using Pydantic settings.
All configuration values can be overridden via environment variables or .env file.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the data-access layer.

    Attributes:
        API_BASE_URL: Base URL of the shop backend API (including /api/v1)
        REQUEST_TIMEOUT: Timeout for outbound HTTP requests in seconds
        AUTH_REFRESH_PATH: Path of the token refresh endpoint
        AUTH_LOGIN_PATH: Path of the login endpoint
        CACHE_PREFIX: Storage key prefix for persisted collections
        SESSION_PREFIX: Storage key prefix for short-lived session data
        CACHE_DATA_VERSION: Format version stamped on every persisted entry
        CACHE_BACKEND: Durable storage backend (memory, file or redis)
        CACHE_DIR: Directory used by the file backend
        CACHE_QUOTA_BYTES: Byte budget for memory/file backends (None = unlimited)
        REDIS_URL: Connection URL used by the redis backend
        SESSION_TTL_SECONDS: Fixed validity of session data
        RESTORE_MAX_RETRIES: Retries of the refresh call when restoring a session
        RESTORE_BASE_DELAY: First backoff delay in seconds when restoring a session
        LOG_LEVEL: Logging level
        LOG_JSON: Emit JSON structured logs instead of human-readable lines
    """

    # Backend
    API_BASE_URL: str = Field(
        default="http://localhost:3001/api/v1",
        description="Base URL of the shop backend API",
    )
    REQUEST_TIMEOUT: float = Field(
        default=15.0,
        gt=0,
        le=120.0,
        description="Timeout for outbound HTTP requests in seconds",
    )
    AUTH_REFRESH_PATH: str = Field(default="/auth/refresh")
    AUTH_LOGIN_PATH: str = Field(default="/auth/login")

    # Persistent cache
    CACHE_PREFIX: str = Field(default="ecotec_cache_")
    SESSION_PREFIX: str = Field(default="ecotec_session_")
    CACHE_DATA_VERSION: int = Field(
        default=1,
        ge=1,
        description="Bump to invalidate every persisted entry on deploy",
    )
    CACHE_BACKEND: Literal["memory", "file", "redis"] = Field(default="file")
    CACHE_DIR: str = Field(default=".ecotec_cache")
    CACHE_QUOTA_BYTES: Optional[int] = Field(
        default=5 * 1024 * 1024,
        gt=0,
        description="Byte budget for memory/file backends",
    )
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    SESSION_TTL_SECONDS: int = Field(default=24 * 60 * 60, gt=0)

    # Session restore
    RESTORE_MAX_RETRIES: int = Field(default=3, ge=0, le=10)
    RESTORE_BASE_DELAY: float = Field(default=2.0, ge=0)

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    LOG_JSON: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="ECOTEC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("API_BASE_URL")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """
        Validate that the API URL is properly formatted.

        Args:
            value: The URL to validate

        Returns:
            The validated URL without trailing slash

        Raises:
            ValueError: If URL is invalid
        """
        if not value:
            raise ValueError("API base URL cannot be empty")

        value = value.rstrip("/")

        if not (value.startswith("http://") or value.startswith("https://")):
            raise ValueError(
                f"API base URL must start with http:// or https://, got: {value}"
            )

        return value

    @field_validator("AUTH_REFRESH_PATH", "AUTH_LOGIN_PATH")
    @classmethod
    def validate_path(cls, value: str) -> str:
        """Endpoint paths are matched by substring, so they must be non-empty."""
        if not value or not value.startswith("/"):
            raise ValueError(f"Endpoint path must start with '/', got: {value!r}")
        return value.rstrip("/")


# Global settings instance
settings = Settings()
