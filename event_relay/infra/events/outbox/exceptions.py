"""Outbox error types."""

from __future__ import annotations


class OutboxErrorCodes:
    """Error codes carried by :class:`OutboxStoreError`."""

    SAVE_FAILED = "OUTBOX_SAVE_FAILED"
    FETCH_FAILED = "OUTBOX_FETCH_FAILED"
    UPDATE_FAILED = "OUTBOX_UPDATE_FAILED"
    PUBLISH_FAILED = "OUTBOX_PUBLISH_FAILED"


class OutboxStoreError(Exception):
    """Raised when an outbox storage operation fails.

    Attributes:
        code: One of :class:`OutboxErrorCodes`
        message: Human-readable description
        cause: Underlying exception, if any
    """

    def __init__(self, code: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


__all__ = ["OutboxErrorCodes", "OutboxStoreError"]
