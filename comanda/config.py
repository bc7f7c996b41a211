"""Configuration management for the order fulfillment engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # State store
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    state_backend: Literal["redis", "memory"] = Field(
        default="redis",
        description="Store used for orders and payments",
    )
    events_channel: str = Field(
        default="comanda:events", description="Pub/sub channel for UI signals"
    )

    # API Configuration
    api_port: int = Field(default=8000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_workers: int = Field(default=4, description="Number of API workers")
    api_base_url: str = Field(
        default="http://localhost:8000/api/v1",
        description="Base URL used by the HTTP status fetcher",
    )
    request_timeout: int = Field(default=30, description="Request timeout in seconds")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    # Order lifecycle
    cancellation_window_minutes: int = Field(
        default=15, ge=0, description="Minutes after creation an order may be cancelled"
    )
    settlement_mode: Literal["strict", "simplified"] = Field(
        default="strict",
        description="strict: charge only ready/arrived orders; simplified: any open order",
    )
    history_ttl: int = Field(
        default=60 * 60 * 24 * 90, description="Status history TTL in seconds"
    )

    # Tracking
    status_poll_interval_seconds: float = Field(
        default=10.0, gt=0, description="Seconds between status polls"
    )

    # Tips
    tip_presets: list[int] = Field(
        default_factory=lambda: [0, 10, 15, 20],
        description="Tip percentages offered at checkout",
    )

    # Delivery
    minutes_per_km: float = Field(
        default=3.0, ge=0, description="Travel time model for delivery estimates"
    )
    quote_cache_ttl: int = Field(
        default=300, ge=0, description="Delivery quote cache TTL in seconds (0 disables)"
    )

    # Customer cache
    customer_cache_ttl: int = Field(
        default=60 * 60 * 24 * 30, description="Customer profile TTL in seconds"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @field_validator("tip_presets")
    @classmethod
    def validate_tip_presets(cls, v: list[int]) -> list[int]:
        """Tip presets must be non-negative percentages."""
        if any(p < 0 for p in v):
            raise ValueError("Tip presets must be non-negative")
        return sorted(set(v))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
