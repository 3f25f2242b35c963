"""Application configuration management."""

from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = Field(default="logsight", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment (dev/staging/prod)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    workers: int = Field(default=1, ge=1, description="Number of workers")

    # Input Limits
    max_lines: int = Field(
        default=10_000, ge=1, description="Line cap applied to very large inputs"
    )
    large_file_threshold_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Inputs above this size are decoded through the streaming path",
    )
    max_upload_bytes: int = Field(
        default=100 * 1024 * 1024, ge=1, description="Largest request body accepted by the API"
    )

    # Pipeline Configuration
    default_min_level: str = Field(default="ERROR", description="Default minimum log level")
    analysis_timeout_seconds: int = Field(
        default=300, ge=60, le=1800, description="Timeout for one pipeline invocation"
    )
    max_tokens_per_chunk: int = Field(
        default=8000, ge=1, description="Token budget for one provider request"
    )
    chunking_threshold: int = Field(
        default=1000, ge=1, description="Entry count above which single requests are avoided"
    )
    slimming_mode: str = Field(
        default="aggressive", description="Slimming mode for oversized inputs"
    )
    max_parallel_chunks: int = Field(
        default=4, ge=1, description="Advertised chunk parallelism (chunks run serially)"
    )
    max_context_entries: int = Field(
        default=100, ge=1, description="Maximum entries rendered into one prompt"
    )
    enable_analytics: bool = Field(default=True, description="Attach analytics to reports")

    # Provider Configuration
    default_provider: str = Field(default="openrouter", description="Default LLM provider")
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API key")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    openrouter_model: str = Field(
        default="x-ai/grok-4-fast:free", description="Default OpenRouter model"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="OpenAI API base URL"
    )
    openai_model: str = Field(default="gpt-4o-mini", description="Default OpenAI model")
    provider_timeout_seconds: int = Field(
        default=120, ge=1, description="Timeout for a single provider request"
    )
    provider_max_tokens: int = Field(
        default=2000, ge=1, description="Completion token limit per request"
    )
    provider_temperature: float = Field(
        default=0.1, ge=0, le=2, description="Sampling temperature"
    )
    app_referer: str = Field(
        default="https://github.com/logsight/logsight",
        description="Referer header sent to OpenRouter",
    )
    app_title: str = Field(default="Logsight", description="Title header sent to OpenRouter")

    # Retry Configuration
    max_retries: int = Field(default=3, ge=0, description="Retries for recoverable provider errors")
    retry_backoff_factor: float = Field(default=1.0, ge=0, description="Retry backoff factor")
    retry_max_delay_seconds: int = Field(
        default=30, ge=0, description="Maximum retry delay in seconds"
    )

    # Circuit Breaker
    breaker_failure_threshold: int = Field(
        default=3, ge=1, description="Failures before a provider circuit opens"
    )
    breaker_success_threshold: int = Field(
        default=2, ge=1, description="Half-open successes needed to close a circuit"
    )
    breaker_reset_timeout_seconds: float = Field(
        default=120.0, ge=0, description="Seconds before an open circuit is probed again"
    )
    breaker_min_timeout_seconds: float = Field(
        default=120.0, ge=0, description="Floor for the per-call breaker timeout"
    )

    # Metrics & Monitoring
    enable_metrics: bool = Field(default=True, description="Enable metrics collection")
    metrics_path: str = Field(default="/metrics", description="Metrics endpoint path")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of {allowed_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        allowed_envs = ["development", "staging", "production"]
        if v.lower() not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v.lower()

    @field_validator("slimming_mode")
    @classmethod
    def validate_slimming_mode(cls, v: str) -> str:
        """Validate slimming mode."""
        allowed_modes = ["light", "aggressive", "ultra"]
        if v.lower() not in allowed_modes:
            raise ValueError(f"Slimming mode must be one of {allowed_modes}")
        return v.lower()

    @field_validator("default_min_level")
    @classmethod
    def validate_default_min_level(cls, v: str) -> str:
        """Validate default minimum level."""
        allowed_levels = ["TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "FATAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Minimum level must be one of {allowed_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
