"""
Configuration settings for the DeepSource MCP resilience core.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Delays of the built-in "standard" retry policy
STANDARD_BASE_DELAY_MS = 1000
STANDARD_MAX_DELAY_MS = 20000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "DeepSource MCP Server"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # === DeepSource API ===
    DEEPSOURCE_API_KEY: str = ""
    DEEPSOURCE_API_URL: str = "https://api.deepsource.io/graphql/"
    DEEPSOURCE_TIMEOUT: int = 30  # seconds

    # === Retry policy overrides (applied to the "standard" policy) ===
    RETRY_MAX_ATTEMPTS: Optional[int] = Field(default=None, ge=0, le=10)
    RETRY_BASE_DELAY_MS: Optional[int] = Field(default=None, ge=100, le=60000)
    RETRY_MAX_DELAY_MS: Optional[int] = Field(default=None, ge=0, le=300000)
    RETRY_MAX_TOTAL_DURATION_MS: int = Field(default=120000, ge=0)  # 2 minutes

    # === Retry budget ===
    RETRY_BUDGET_PER_MINUTE: int = Field(default=10, ge=1, le=100)
    RETRY_BUDGET_WINDOW_MS: int = Field(default=60000, ge=1)
    RETRY_GLOBAL_BUDGET_PER_MINUTE: Optional[int] = Field(default=None, ge=1)  # None = 3x per-endpoint

    # === Circuit breaker ===
    CIRCUIT_BREAKER_THRESHOLD: int = Field(default=5, ge=1, le=20)
    CIRCUIT_BREAKER_TIMEOUT_MS: int = Field(default=30000, ge=1000, le=300000)
    CIRCUIT_BREAKER_FAILURE_WINDOW_MS: int = Field(default=60000, ge=1)
    CIRCUIT_BREAKER_SUCCESS_THRESHOLD: int = Field(default=3, ge=1)
    CIRCUIT_BREAKER_HALF_OPEN_MAX_ATTEMPTS: int = Field(default=5, ge=1)

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "Settings":
        """
        Validate the effective standard-policy delays.

        A missing override falls back to the standard policy's value. A base
        delay above the default max raises the max to match.
        """
        if self.RETRY_MAX_DELAY_MS is None:
            if self.RETRY_BASE_DELAY_MS is not None and self.RETRY_BASE_DELAY_MS > STANDARD_MAX_DELAY_MS:
                self.RETRY_MAX_DELAY_MS = self.RETRY_BASE_DELAY_MS
            return self

        base_delay_ms = (
            STANDARD_BASE_DELAY_MS if self.RETRY_BASE_DELAY_MS is None else self.RETRY_BASE_DELAY_MS
        )
        if self.RETRY_MAX_DELAY_MS < base_delay_ms:
            raise ValueError(
                f"RETRY_MAX_DELAY_MS ({self.RETRY_MAX_DELAY_MS}) must be >= "
                f"the base delay ({base_delay_ms})"
            )
        return self


# Global settings instance
settings = Settings()
