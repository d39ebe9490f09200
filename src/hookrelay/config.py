"""Configuration management for hookrelay."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

DEFAULT_RETRY_DELAYS_MINUTES = [1, 5, 30, 120, 720]


class Settings(BaseSettings):
    """hookrelay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKRELAY_ prefix. For example:
        HOOKRELAY_QDRANT_URL=http://localhost:6333
        HOOKRELAY_MAX_ATTEMPTS=8
        HOOKRELAY_RETRY_DELAYS_MINUTES='[1, 2, 4]'
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
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
        description="Maximum records fetched by a single scroll when listing deliveries",
    )

    # Outbound requests
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Hard wall-clock timeout for a single webhook POST",
    )
    user_agent: str = Field(
        default="hookrelay-webhooks/1.0",
        description="User-Agent header sent with every delivery",
    )
    response_body_max_length: int = Field(
        default=10240,
        ge=0,
        description="Response body characters kept on the delivery record",
    )
    failure_reason_max_length: int = Field(
        default=2000,
        ge=1,
        description="Characters kept in an endpoint's last_failure_reason",
    )
    fanout_max_concurrent: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum in-flight requests for one fan-out",
    )

    # Retry policy
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum HTTP attempts per delivery (initial attempt included)",
    )
    retry_delays_minutes: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS_MINUTES),
        description="Backoff table indexed by attempt number, clamped to the last entry",
    )
    retry_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum due deliveries picked up per retry sweep",
    )
    retry_max_concurrent: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum concurrent dispatches within one retry sweep",
    )
    claim_lease_seconds: int = Field(
        default=300,
        ge=30,
        description=(
            "How far next_retry_at is pushed when a retry is claimed. "
            "A worker that dies mid-attempt leaves the delivery due again after this lease."
        ),
    )

    # Endpoint health
    failure_threshold: int = Field(
        default=10,
        ge=1,
        description="Consecutive failures after which an endpoint is quarantined",
    )

    # Sweeps
    sweeps_enabled: bool = Field(
        default=True,
        description=(
            "Run the retry and health sweeps inside the API process. Enable it in "
            "exactly one process: retry claims are only atomic within a process"
        ),
    )
    retry_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between retry sweeps",
    )
    health_interval_seconds: float = Field(
        default=600.0,
        gt=0.0,
        description="Seconds between endpoint health sweeps",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=False,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "Settings":
        """Validate the backoff table.

        The table must have at least one entry and every delay must be
        positive, otherwise a failed delivery would be retried immediately
        on the next sweep.
        """
        if not self.retry_delays_minutes:
            raise ValueError("retry_delays_minutes must contain at least one delay")
        if any(delay <= 0 for delay in self.retry_delays_minutes):
            raise ValueError(
                f"retry_delays_minutes must be positive, got {self.retry_delays_minutes}"
            )
        return self

    @model_validator(mode="after")
    def validate_retry_concurrency(self) -> "Settings":
        """Reject a retry concurrency larger than the batch it works through."""
        if self.retry_max_concurrent > self.retry_batch_size:
            raise ValueError(
                f"retry_max_concurrent ({self.retry_max_concurrent}) must not exceed "
                f"retry_batch_size ({self.retry_batch_size})"
            )
        return self

    def retry_delay_minutes(self, attempts: int) -> int:
        """Delay before the next attempt after ``attempts`` failed attempts.

        Attempt 1 failing waits the first table entry, attempt 2 the second,
        and anything past the end of the table waits the last entry.
        """
        index = min(max(attempts, 1) - 1, len(self.retry_delays_minutes) - 1)
        return self.retry_delays_minutes[index]


# Global settings instance
settings = Settings()
