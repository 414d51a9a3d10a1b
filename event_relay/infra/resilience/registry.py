"""Process-wide registry of named circuit breakers.

Example:
    from event_relay.infra.resilience import circuit_breakers

    breaker = circuit_breakers.get_or_create("event-bus.publish", failure_threshold=3)
    stats = {name: b.get_stats() for name, b in circuit_breakers.get_all().items()}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from event_relay.infra.resilience.circuit_breaker import CircuitBreaker

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Registry for discovering and administering named breakers."""

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker] = {}

    def create(
        self,
        name: str,
        action: Callable[..., Awaitable[Any]] | None = None,
        **options: Any,
    ) -> CircuitBreaker:
        """Create and register a breaker.

        Args:
            name: Unique breaker name.
            action: Coroutine function bound to the breaker.
            **options: CircuitBreaker keyword options.

        Raises:
            ValueError: If a breaker with this name already exists.
        """
        if name in self._breakers:
            msg = f"Circuit breaker '{name}' already exists"
            raise ValueError(msg)
        breaker = CircuitBreaker(name, action, **options)
        self._breakers[name] = breaker
        return breaker

    def get_or_create(
        self,
        name: str,
        action: Callable[..., Awaitable[Any]] | None = None,
        **options: Any,
    ) -> CircuitBreaker:
        """Return the named breaker, creating it on first use.

        Options are ignored when the breaker already exists.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = self.create(name, action, **options)
        return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        return self._breakers.get(name)

    def get_all(self) -> dict[str, CircuitBreaker]:
        """Copy of the name -> breaker mapping."""
        return dict(self._breakers)

    async def reset(self, name: str | None = None) -> None:
        """Reset one breaker by name, or every breaker when name is None.

        Raises:
            KeyError: If name is given but not registered.
        """
        if name is not None:
            if name not in self._breakers:
                msg = f"Circuit breaker '{name}' is not registered"
                raise KeyError(msg)
            await self._breakers[name].reset()
            return

        for breaker in list(self._breakers.values()):
            await breaker.reset()
        logger.info("All circuit breakers reset", extra={"count": len(self._breakers)})

    def remove(self, name: str) -> bool:
        """Unregister a breaker. Returns False if it was not registered."""
        return self._breakers.pop(name, None) is not None

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)


# Global registry
circuit_breakers = CircuitBreakerRegistry()


__all__ = ["CircuitBreakerRegistry", "circuit_breakers"]
