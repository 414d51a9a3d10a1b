"""Circuit breaker for outbound async calls.

States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failure threshold exceeded, calls fail fast
    - HALF_OPEN: Reset timeout elapsed, trial calls test the dependency

Transitions:
    CLOSED -> OPEN: failures >= failure_threshold and total_requests >= volume_threshold
    OPEN -> HALF_OPEN: first call at or after next_attempt_time
    HALF_OPEN -> CLOSED: consecutive_successes >= success_threshold
    HALF_OPEN -> OPEN: any counted failure

Example:
    >>> breaker = CircuitBreaker(
    ...     "event-bus.publish",
    ...     bus.publish,
    ...     failure_threshold=5,
    ...     reset_timeout=30.0,
    ...     request_timeout=10.0,
    ... )
    >>> await breaker.execute("orders.created", {"order_id": 1})
    >>>
    >>> # Any coroutine function can share the same breaker
    >>> await breaker.call(other_client.send, payload)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from event_relay.infra.metrics.tracking import (
    track_circuit_breaker_failure,
    track_circuit_breaker_rejected,
    track_circuit_breaker_state_change,
    track_circuit_breaker_success,
    update_circuit_breaker_state,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        name: Name of the rejecting circuit breaker
        next_attempt_time: When the circuit will admit a trial call
    """

    def __init__(self, name: str, next_attempt_time: datetime | None = None) -> None:
        self.name = name
        self.next_attempt_time = next_attempt_time
        retry_at = next_attempt_time.isoformat() if next_attempt_time else "unknown"
        super().__init__(f"Circuit breaker '{name}' is open (next attempt at {retry_at})")


class CircuitTimeoutError(TimeoutError):
    """Raised when a protected call exceeds the breaker's request_timeout."""

    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        super().__init__(f"Circuit breaker '{name}' call timed out after {timeout:.3f}s")


class CircuitBreaker:
    """Process-local circuit breaker around async actions.

    The breaker may be bound to one ``action`` (run by :meth:`execute`) and
    still protect arbitrary coroutine functions through :meth:`call` and
    :meth:`protected`; all of them share the same state.

    State transitions are serialized with an asyncio.Lock; the wrapped call
    itself runs outside the lock.

    Attributes:
        name: Identifier for this breaker (metrics label, registry key)
        failure_threshold: Consecutive counted failures needed to open
        reset_timeout: Seconds the circuit stays open before probing
        request_timeout: Per-call timeout in seconds, None to disable
        success_threshold: HALF_OPEN successes needed to close
        volume_threshold: Minimum counted requests before the circuit may open
        error_filter: Predicate deciding whether an error counts as a failure
    """

    def __init__(
        self,
        name: str,
        action: Callable[..., Awaitable[Any]] | None = None,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        request_timeout: float | None = None,
        success_threshold: int = 2,
        volume_threshold: int = 1,
        error_filter: Callable[[BaseException], bool] | None = None,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Unique identifier for this breaker.
            action: Coroutine function run by execute(). Optional.
            failure_threshold: Counted failures in CLOSED before opening. Must be > 0.
            reset_timeout: Seconds to stay OPEN before admitting a trial call. Must be > 0.
            request_timeout: Seconds before a call is abandoned and counted as
                a failure. None disables the timeout.
            success_threshold: Successful HALF_OPEN calls needed to close. Must be > 0.
            volume_threshold: Counted requests required before the circuit may
                open. Must be > 0.
            error_filter: Returns True for errors that count toward opening.
                Errors it rejects propagate without touching breaker state.
                Timeouts always count.

        Raises:
            ValueError: If any threshold or timeout value is invalid.
        """
        if not name:
            msg = "name must be a non-empty string"
            raise ValueError(msg)
        if failure_threshold <= 0:
            msg = "failure_threshold must be greater than 0"
            raise ValueError(msg)
        if reset_timeout <= 0:
            msg = "reset_timeout must be greater than 0"
            raise ValueError(msg)
        if request_timeout is not None and request_timeout <= 0:
            msg = "request_timeout must be greater than 0 or None"
            raise ValueError(msg)
        if success_threshold <= 0:
            msg = "success_threshold must be greater than 0"
            raise ValueError(msg)
        if volume_threshold <= 0:
            msg = "volume_threshold must be greater than 0"
            raise ValueError(msg)

        self.name = name
        self.action = action
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.request_timeout = request_timeout
        self.success_threshold = success_threshold
        self.volume_threshold = volume_threshold
        self.error_filter = error_filter

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._consecutive_successes = 0
        self._total_requests = 0
        self._last_failure_time: datetime | None = None
        self._next_attempt_time: datetime | None = None
        self._lock = asyncio.Lock()

        # Lifetime statistics, cleared only by reset()
        self.total_failures = 0
        self.total_successes = 0
        self.total_rejections = 0

        update_circuit_breaker_state(self.name, self._state.value)

        logger.info(
            "Circuit breaker '%s' initialized",
            name,
            extra={
                "circuit_breaker": name,
                "failure_threshold": failure_threshold,
                "reset_timeout": reset_timeout,
                "request_timeout": request_timeout,
                "success_threshold": success_threshold,
                "volume_threshold": volume_threshold,
            },
        )

    @property
    def state(self) -> CircuitState:
        """Current circuit state (OPEN is reported until a trial call is made)."""
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def successes(self) -> int:
        return self._successes

    @property
    def consecutive_successes(self) -> int:
        return self._consecutive_successes

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def last_failure_time(self) -> datetime | None:
        return self._last_failure_time

    @property
    def next_attempt_time(self) -> datetime | None:
        return self._next_attempt_time

    async def execute(self, *args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
        """Run the bound action with circuit breaker protection.

        Raises:
            TypeError: If the breaker was created without an action.
            CircuitOpenError: If the circuit is open.
            CircuitTimeoutError: If the call exceeds request_timeout.
        """
        if self.action is None:
            msg = f"Circuit breaker '{self.name}' has no bound action; use call() instead"
            raise TypeError(msg)
        return await self.call(self.action, *args, **kwargs)

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """Execute ``func`` with circuit breaker protection.

        Args:
            func: Coroutine function to execute.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            Result returned by func.

        Raises:
            CircuitOpenError: If the circuit is open.
            CircuitTimeoutError: If the call exceeds request_timeout.
            Exception: Any exception raised by func (after recording it).
        """
        await self._before_call()

        try:
            if self.request_timeout is None:
                result = await func(*args, **kwargs)
            else:
                try:
                    result = await asyncio.wait_for(func(*args, **kwargs), self.request_timeout)
                except TimeoutError as e:
                    raise CircuitTimeoutError(self.name, self.request_timeout) from e
        except CircuitTimeoutError as e:
            await self._on_failure(e)
            raise
        except Exception as e:
            if self.error_filter is not None and not self.error_filter(e):
                logger.debug(
                    "Circuit breaker '%s' ignored filtered exception",
                    self.name,
                    extra={
                        "circuit_breaker": self.name,
                        "exception_type": type(e).__name__,
                    },
                )
                raise
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    def protected(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorator to protect a coroutine function with this breaker.

        Example:
            >>> @breaker.protected
            ... async def send(payload: dict) -> None:
            ...     await client.post(payload)
        """

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.call(func, *args, **kwargs)

        return wrapper

    async def _before_call(self) -> None:
        """Admit or reject a call, probing an expired OPEN circuit."""
        async with self._lock:
            if not self.is_open:
                return

            now = datetime.now(UTC)
            if self._next_attempt_time is not None and now >= self._next_attempt_time:
                self._transition_to_half_open()
                return

            self.total_rejections += 1
            track_circuit_breaker_rejected(self.name)
            logger.warning(
                "Circuit breaker '%s' is open, rejecting call",
                self.name,
                extra={
                    "circuit_breaker": self.name,
                    "state": self._state.value,
                    "next_attempt_time": (
                        self._next_attempt_time.isoformat() if self._next_attempt_time else None
                    ),
                    "total_rejections": self.total_rejections,
                },
            )
            raise CircuitOpenError(self.name, self._next_attempt_time)

    async def _on_success(self) -> None:
        async with self._lock:
            self.total_successes += 1
            track_circuit_breaker_success(self.name)

            if self.is_open:
                # Late result of a call admitted before the circuit reopened
                return

            self._total_requests += 1
            self._successes += 1

            if self.is_half_open:
                self._consecutive_successes += 1
                logger.info(
                    "Circuit breaker '%s' success in HALF_OPEN",
                    self.name,
                    extra={
                        "circuit_breaker": self.name,
                        "consecutive_successes": self._consecutive_successes,
                        "success_threshold": self.success_threshold,
                    },
                )
                if self._consecutive_successes >= self.success_threshold:
                    self._transition_to_closed()
            elif self._failures > 0:
                logger.debug(
                    "Circuit breaker '%s' resetting failure count",
                    self.name,
                    extra={"circuit_breaker": self.name, "previous_failures": self._failures},
                )
                self._failures = 0

    async def _on_failure(self, exception: BaseException) -> None:
        async with self._lock:
            now = datetime.now(UTC)
            self.total_failures += 1
            self._last_failure_time = now
            track_circuit_breaker_failure(self.name)

            if self.is_open:
                return

            self._total_requests += 1
            self._failures += 1

            logger.warning(
                "Circuit breaker '%s' recorded failure",
                self.name,
                extra={
                    "circuit_breaker": self.name,
                    "state": self._state.value,
                    "failures": self._failures,
                    "failure_threshold": self.failure_threshold,
                    "total_requests": self._total_requests,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                },
            )

            if self.is_half_open:
                self._transition_to_open(now)
            elif (
                self._failures >= self.failure_threshold
                and self._total_requests >= self.volume_threshold
            ):
                self._transition_to_open(now)

    def _transition_to_open(self, now: datetime) -> None:
        # Caller holds the lock
        old_state = self._state.value
        self._state = CircuitState.OPEN
        self._consecutive_successes = 0
        self._next_attempt_time = now + timedelta(seconds=self.reset_timeout)

        track_circuit_breaker_state_change(self.name, old_state, self._state.value)
        update_circuit_breaker_state(self.name, self._state.value)

        logger.error(
            "Circuit breaker '%s' opened",
            self.name,
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state,
                "new_state": self._state.value,
                "failures": self._failures,
                "next_attempt_time": self._next_attempt_time.isoformat(),
            },
        )

    def _transition_to_half_open(self) -> None:
        # Caller holds the lock
        old_state = self._state.value
        self._state = CircuitState.HALF_OPEN
        self._consecutive_successes = 0

        track_circuit_breaker_state_change(self.name, old_state, self._state.value)
        update_circuit_breaker_state(self.name, self._state.value)

        logger.info(
            "Circuit breaker '%s' transitioned to HALF_OPEN",
            self.name,
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state,
                "new_state": self._state.value,
            },
        )

    def _transition_to_closed(self) -> None:
        # Caller holds the lock
        old_state = self._state.value
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._consecutive_successes = 0
        self._total_requests = 0
        self._last_failure_time = None
        self._next_attempt_time = None

        if old_state != self._state.value:
            track_circuit_breaker_state_change(self.name, old_state, self._state.value)
        update_circuit_breaker_state(self.name, self._state.value)

        logger.info(
            "Circuit breaker '%s' closed",
            self.name,
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state,
                "new_state": self._state.value,
            },
        )

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of state, counters, timestamps and configuration.

        Safe to call without the lock; values may be one transition stale.
        """
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failures,
            "successes": self._successes,
            "consecutive_successes": self._consecutive_successes,
            "total_requests": self._total_requests,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
            "last_failure_time": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "next_attempt_time": (
                self._next_attempt_time.isoformat() if self._next_attempt_time else None
            ),
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
            "request_timeout": self.request_timeout,
            "success_threshold": self.success_threshold,
            "volume_threshold": self.volume_threshold,
        }

    async def reset(self) -> None:
        """Force the circuit CLOSED and zero every counter.

        Administrative escape hatch; normally the circuit recovers through
        HALF_OPEN on its own.
        """
        async with self._lock:
            self._transition_to_closed()
            self.total_failures = 0
            self.total_successes = 0
            self.total_rejections = 0
            logger.info(
                "Circuit breaker '%s' manually reset",
                self.name,
                extra={"circuit_breaker": self.name},
            )

    def __call__(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Alias for :meth:`protected` so the breaker works as a decorator."""
        return self.protected(func)

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self._state.value})"


__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "CircuitTimeoutError",
]
