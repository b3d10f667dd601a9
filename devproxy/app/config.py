"""
Configuration module for the development proxy.

This module uses Pydantic Settings to load and validate environment variables
for the upstream origin, cookie rewriting, timeouts and the local bind address.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Proxy settings loaded from environment variables.

    The rule table itself is static (see proxy/rules.py); these values only
    parameterize it.
    """

    # =========================================================================
    # Upstream Configuration
    # =========================================================================

    UPSTREAM_URL: HttpUrl = Field(
        default="http://localhost:3000",
        description="Origin that matched requests are forwarded to",
    )

    COOKIE_DOMAIN_REWRITE: Optional[str] = Field(
        default="localhost",
        description="Domain written into Set-Cookie headers relayed to the client (empty removes the attribute)",
    )

    PROXY_TIMEOUT: float = Field(
        default=300.0,
        description="Upstream request timeout in seconds",
        gt=0,
    )

    # =========================================================================
    # Proxy Server Configuration
    # =========================================================================

    PROXY_HOST: str = Field(
        default="127.0.0.1",
        description="Host to bind the dev proxy",
    )

    PROXY_PORT: int = Field(
        default=5173,
        description="Port to bind the dev proxy",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def upstream_url_str(self) -> str:
        """
        Get the upstream URL as a string without trailing slash.
        """
        return str(self.UPSTREAM_URL).rstrip("/")

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
    """
    Get or create a singleton Settings instance.

    Cached so the environment is read once per process.
    """
    return Settings()
