"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Anthropic API
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key; without it every stage runs its fallback",
    )
    classifier_model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Fast model used for complexity classification",
    )
    architect_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used to generate the top-level breakdown",
    )
    verifier_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Reasoning model used for chain-of-verification",
    )
    refiner_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for deep-dive refinement",
    )
    model_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout for model calls",
    )

    # Token pricing (USD per million tokens) for architect cost metadata
    architect_input_cost_per_mtok: float = Field(default=3.0, ge=0)
    architect_output_cost_per_mtok: float = Field(default=15.0, ge=0)

    # Stepwise configuration
    stepwise_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    stepwise_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    stepwise_log_file: str | None = Field(
        default=None,
        description="Optional rotating log file path",
    )

    # Pipeline tuning
    atomic_threshold_minutes: int = Field(
        default=10,
        ge=1,
        description="Steps above this many minutes are composite",
    )
    duration_tolerance: float = Field(
        default=0.15,
        ge=0,
        lt=1,
        description="Relative drift allowed before durations are rescaled",
    )
    overhead_factor: float = Field(
        default=1.5,
        ge=1,
        description="Task-switching overhead applied to size midpoints",
    )
    eager_max_depth: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Depth cap for automatic refinement at generation time",
    )
    deferred_max_depth: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Depth cap for user-triggered deep dives",
    )

    # HTTP server
    stepwise_host: str = Field(default="127.0.0.1")
    stepwise_port: int = Field(default=8000, ge=1, le=65535)

    @property
    def model_configured(self) -> bool:
        """Whether a usable API key is present."""
        return bool(self.anthropic_api_key and self.anthropic_api_key.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.eager_max_depth
        1
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
