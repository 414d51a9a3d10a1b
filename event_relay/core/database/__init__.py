"""Database primitives shared across the service."""

from __future__ import annotations

from .base import NAMING_CONVENTION, Base, TimestampMixin, UUIDv7PKMixin, generate_uuid7, utcnow
from .repository import BaseRepository

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "generate_uuid7",
    "utcnow",
]
