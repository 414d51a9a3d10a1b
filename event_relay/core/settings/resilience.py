"""Circuit breaker settings for the publish path."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CircuitBreakerSettings(BaseSettings):
    """Default options for the breaker guarding bus publishes.

    Environment variables use CIRCUIT_BREAKER_ prefix.
    Example: CIRCUIT_BREAKER_FAILURE_THRESHOLD=10
    """

    enabled: bool = Field(default=True, description="Wrap publishes in a circuit breaker.")
    name: str = Field(default="event-bus.publish", min_length=1, max_length=100)

    failure_threshold: int = Field(
        default=5, ge=1, le=1000, description="Failures before the circuit opens."
    )
    volume_threshold: int = Field(
        default=5, ge=1, le=10_000, description="Requests needed before the circuit may open."
    )
    success_threshold: int = Field(
        default=2, ge=1, le=100, description="Half-open successes needed to close."
    )
    reset_timeout: float = Field(
        default=30.0, gt=0, le=3600.0, description="Seconds the circuit stays open."
    )
    request_timeout: float | None = Field(
        default=10.0, gt=0, le=600.0, description="Per-call timeout (None disables)."
    )

    model_config = SettingsConfigDict(
        env_prefix="CIRCUIT_BREAKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    def to_breaker_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``CircuitBreaker(...)``."""
        return {
            "failure_threshold": self.failure_threshold,
            "volume_threshold": self.volume_threshold,
            "success_threshold": self.success_threshold,
            "reset_timeout": self.reset_timeout,
            "request_timeout": self.request_timeout,
        }
