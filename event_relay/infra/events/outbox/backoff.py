"""Retry delay for failed outbox publishes."""

from __future__ import annotations

from event_relay.utils.retry.strategies import RetryStrategy

DEFAULT_MAX_DELAY = 3600.0


def compute_backoff(
    attempt: int,
    base_delay: float,
    *,
    max_delay: float | None = DEFAULT_MAX_DELAY,
    jitter: bool = False,
    jitter_ratio: float = 0.1,
) -> float:
    """Seconds to wait before retrying after the ``attempt``-th failure.

    ``base_delay * 2 ** (attempt - 1)``, capped at ``max_delay``. With
    ``jitter`` enabled the delay is scaled by a random factor in
    ``[1 - jitter_ratio, 1 + jitter_ratio]`` and still capped.

    Example:
        >>> [compute_backoff(n, 1.0) for n in (1, 2, 3)]
        [1.0, 2.0, 4.0]
    """
    if attempt < 1:
        msg = f"attempt must be >= 1, got {attempt}"
        raise ValueError(msg)
    if not 0 <= jitter_ratio < 1:
        msg = f"jitter_ratio must be in [0, 1), got {jitter_ratio}"
        raise ValueError(msg)

    strategy = RetryStrategy(
        initial_delay=base_delay,
        max_delay=float("inf") if max_delay is None else max_delay,
        exponential_base=2.0,
        jitter=jitter,
        jitter_range=(1.0 - jitter_ratio, 1.0 + jitter_ratio),
    )
    return strategy.calculate_delay(attempt - 1)


__all__ = ["DEFAULT_MAX_DELAY", "compute_backoff"]
