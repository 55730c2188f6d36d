"""Mailroom persistence layer."""

from mailroom.store.context import MAX_CONTEXT_VALUE_SIZE, ScopedContextStore
from mailroom.store.handle import StorageHandle
from mailroom.store.pool import StorePool
from mailroom.store.queue import (
    ANONYMOUS_SENDER,
    DEFAULT_MESSAGE_LIMIT,
    MAX_MESSAGE_LIMIT,
    MAX_MESSAGE_SIZE,
    MessageQueue,
    resolve_sender,
)

__all__ = [
    "StorageHandle",
    "StorePool",
    "ScopedContextStore",
    "MessageQueue",
    "resolve_sender",
    "ANONYMOUS_SENDER",
    "DEFAULT_MESSAGE_LIMIT",
    "MAX_MESSAGE_LIMIT",
    "MAX_MESSAGE_SIZE",
    "MAX_CONTEXT_VALUE_SIZE",
]
