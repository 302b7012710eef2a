"""Configuration management for hookrelay."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """hookrelay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKRELAY_ prefix. For example:
        HOOKRELAY_QDRANT_URL=http://localhost:6333
        HOOKRELAY_RETRY_ON_RATE_LIMIT=false
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: 'json' for production, 'text' for development",
    )

    # Delivery
    user_agent: str = Field(
        default="Hookrelay-Webhooks/1.0",
        description="User-Agent header sent with every delivery",
    )
    default_timeout_ms: int = Field(
        default=10000,
        ge=1000,
        le=30000,
        description="Per-attempt timeout for new webhooks (milliseconds)",
    )
    default_retry_attempts: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Additional attempts after the first for new webhooks",
    )
    backoff_base_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Delay before the first retry; doubles each attempt",
    )
    backoff_max_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Upper bound for a single backoff delay",
    )
    retry_on_rate_limit: bool = Field(
        default=True,
        description=(
            "Treat HTTP 429 as retryable and honor Retry-After. "
            "When false, 429 is terminal like every other 4xx."
        ),
    )
    max_retry_after_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Cap applied to a receiver's Retry-After header",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        description="Characters of response body kept on delivery records",
    )
    max_concurrent_deliveries: int | None = Field(
        default=None,
        ge=1,
        description=(
            "Optional cap on deliveries in flight for a single trigger. "
            "Unset, every matching webhook is delivered to at once."
        ),
    )
    delivery_log_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default number of delivery records returned by get_delivery_logs",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookrelay",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Maximum records fetched in a single scroll operation",
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "Settings":
        """Reject a backoff cap below the base delay."""
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError(
                f"backoff_max_seconds ({self.backoff_max_seconds}) must be >= "
                f"backoff_base_seconds ({self.backoff_base_seconds})"
            )
        if self.env == "production" and self.log_format == "text":
            logger.warning("Text log format enabled in production")
        return self


# Global settings instance
settings = Settings()
