"""
Configuration module for the studio API server.

Settings are loaded from .env file or system environment using Pydantic
Settings.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./alternaview.db",
        description="SQLAlchemy async database URL",
        min_length=1,
    )

    DATABASE_ECHO: bool = Field(
        default=False,
        description="Log every SQL statement issued by the engine",
    )

    DATABASE_INIT_SCHEMA: bool = Field(
        default=False,
        description="Create the estimates/projects tables on startup if missing",
    )

    # =========================================================================
    # Error Reporting
    # =========================================================================

    EXPOSE_ERROR_DETAILS: bool = Field(
        default=True,
        description="Return the underlying error message in 500 responses (development only)",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    API_HOST: str = Field(
        default="127.0.0.1",
        description="Host to bind the API server",
    )

    API_PORT: int = Field(
        default=3000,
        description="Port to bind the API server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        """
        Require an async driver in the URL (e.g. sqlite+aiosqlite, postgresql+asyncpg).

        Raises:
            ValueError: If the URL names no driver
        """
        scheme = v.split("://", 1)[0]
        if "+" not in scheme:
            raise ValueError(
                f"DATABASE_URL must name an async driver, got scheme: '{scheme}'. "
                "Expected format: 'sqlite+aiosqlite:///path.db'"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Get or create the cached Settings instance."""
    return Settings()
