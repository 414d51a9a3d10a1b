"""Delay strategies for retrying operations."""

from __future__ import annotations

import random
from collections.abc import Callable


class RetryStrategy:
    """Exponential delay schedule with an upper bound and optional jitter.

    ``calculate_delay(attempt)`` is zero-based: attempt 0 waits
    ``initial_delay``, attempt 1 waits ``initial_delay * exponential_base``
    and so on, never more than ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: tuple[float, float] = (0.5, 1.5),
        exceptions: tuple[type[Exception], ...] = (Exception,),
        retry_if: Callable[[Exception], bool] | None = None,
    ) -> None:
        if initial_delay < 0:
            msg = f"initial_delay must be >= 0, got {initial_delay}"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range
        self.exceptions = exceptions
        self.retry_if = retry_if

    def should_retry(self, exception: Exception) -> bool:
        if self.retry_if is not None:
            return self.retry_if(exception)
        return isinstance(exception, self.exceptions)

    def calculate_delay(self, attempt: int) -> float:
        # Large attempt numbers overflow float exponentiation
        try:
            delay = self.initial_delay * (self.exponential_base**attempt)
        except OverflowError:
            delay = self.max_delay
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= random.uniform(self.jitter_range[0], self.jitter_range[1])
            delay = min(delay, self.max_delay)
        return delay
