"""Exceptions shared by the Mailroom context store and message queue."""

from __future__ import annotations


class MailroomStoreError(Exception):
    """Base class for store errors."""


class EmptyFieldError(MailroomStoreError):
    """Raised when a required string input is blank after trimming."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Required field {field!r} cannot be empty")
        self.field = field


class ContentTooLargeError(MailroomStoreError):
    """Raised when a value or message body exceeds its UTF-8 size ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Content too large: {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class InvalidMessageIdError(MailroomStoreError):
    """Raised when a message id is not a numeric identifier."""

    def __init__(self, message_id: object) -> None:
        super().__init__(f"Invalid message ID: {message_id!r} (must be a numeric ID)")
        self.message_id = message_id


class StorageUnavailableError(MailroomStoreError):
    """Raised when the underlying database cannot be opened, read or written."""
