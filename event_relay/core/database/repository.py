"""Minimal generic repository for SQLAlchemy models.

Session is always passed explicitly. For queries not covered here, use the
session directly; the repository is a convenience, not an ORM wrapper.

Example:
    class OutboxRepository(BaseRepository[OutboxMessage]):
        async def fetch_due(self, session: AsyncSession, ...) -> Sequence[OutboxMessage]:
            ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Generic repository with get and create helpers."""

    __slots__ = ("model", "_logger")

    def __init__(self, model: type[T]) -> None:
        """Initialize repository with model class.

        Args:
            model: SQLAlchemy model class (e.g., OutboxMessage)
        """
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Get entity by primary key.

        Returns:
            Entity if found, None otherwise
        """
        instance = await session.get(self.model, id)
        self._logger.debug(
            "db.get: %s(%s) -> %s",
            self.model.__name__,
            id,
            "found" if instance else "not found",
        )
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Adds to session and flushes so generated values (like id) are
        populated. The caller owns the transaction and decides when to commit.

        Returns:
            Persisted entity with generated fields populated
        """
        session.add(instance)
        await session.flush()

        self._logger.debug(
            "db.create: %s(id=%s)", self.model.__name__, getattr(instance, "id", None)
        )
        return instance
