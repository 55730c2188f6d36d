"""Persisted record models: queued messages and context entries."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from mailroom.models.scope import Scope


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


class Message(BaseModel):
    """
    A message waiting in a (project, recipient) queue.

    Messages are immutable once stored. They leave the queue either by being
    consumed with ``MessageQueue.receive()`` or by ``delete_message()``.
    """

    id: str
    """Decimal string of the row id. Increases with every insert."""
    project_id: str
    to_agent: str
    from_agent: str
    reference_id: str | None = None
    """Id of an earlier message this one answers. Not checked for existence."""
    content: str
    created_at: int = Field(default_factory=now_ms)
    """Unix millisecond timestamp assigned at insertion."""


class ContextEntry(BaseModel):
    """A single key/value record in one scope."""

    scope: Scope
    key: str
    value: str
    updated_at: int = Field(default_factory=now_ms)
    """Unix millisecond timestamp of the last insert or update."""
