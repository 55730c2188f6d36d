"""
Mailroom — a local message relay and shared context store for agents.

Primary entry point::

    from mailroom import GLOBAL, Mailroom

    async with Mailroom.open() as mailroom:
        await mailroom.queue.send("owner/repo", "reviewer", "builder", "ready")
        messages = await mailroom.queue.receive("owner/repo", "reviewer")
        await mailroom.context.set(GLOBAL, "release", "1.4.0")
"""

from mailroom.client import Mailroom
from mailroom.errors import (
    ContentTooLargeError,
    EmptyFieldError,
    InvalidMessageIdError,
    MailroomStoreError,
    StorageUnavailableError,
)
from mailroom.models import (
    GLOBAL,
    ContextEntry,
    GlobalScope,
    MailroomConfig,
    Message,
    ProjectScope,
    Scope,
    StoreConfig,
    scope_for,
)
from mailroom.store import (
    MessageQueue,
    ScopedContextStore,
    StorageHandle,
    StorePool,
    resolve_sender,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "Mailroom",
    "StorageHandle",
    "StorePool",
    "ScopedContextStore",
    "MessageQueue",
    "resolve_sender",
    # Config
    "MailroomConfig",
    "StoreConfig",
    # Models
    "GLOBAL",
    "GlobalScope",
    "ProjectScope",
    "Scope",
    "scope_for",
    "ContextEntry",
    "Message",
    # Errors
    "MailroomStoreError",
    "EmptyFieldError",
    "ContentTooLargeError",
    "InvalidMessageIdError",
    "StorageUnavailableError",
]
