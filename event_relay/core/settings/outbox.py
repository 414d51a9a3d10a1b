"""Outbox dispatcher settings."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OutboxSettings(BaseSettings):
    """Polling cadence and retry policy for the outbox dispatcher.

    Environment variables use OUTBOX_ prefix.
    Example: OUTBOX_POLL_INTERVAL=2.5, OUTBOX_MAX_RETRIES=8

    All durations are in seconds.
    """

    enabled: bool = Field(default=True, description="Run the dispatcher in the worker.")

    poll_interval: float = Field(
        default=5.0, gt=0, le=3600.0, description="Seconds between dispatcher ticks."
    )
    batch_size: int | None = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum due messages handled per tick (None handles all).",
    )

    # ─────────────────────────────────────────────────────
    # Retry policy
    # ─────────────────────────────────────────────────────
    max_retries: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Publish failures after which a message is parked as failed.",
    )
    base_delay: float = Field(
        default=5.0, gt=0, le=86_400.0, description="Backoff delay after the first failure."
    )
    max_delay: float = Field(
        default=3600.0, gt=0, le=604_800.0, description="Upper bound for a single backoff delay."
    )
    jitter: bool = Field(
        default=False, description="Spread retries by +/- jitter_ratio of the delay."
    )
    jitter_ratio: float = Field(default=0.1, ge=0.0, lt=1.0)

    shutdown_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600.0,
        description="Seconds to wait for an in-flight tick when stopping.",
    )

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _check_delays(self) -> OutboxSettings:
        if self.max_delay < self.base_delay:
            msg = "max_delay must be greater than or equal to base_delay"
            raise ValueError(msg)
        return self
