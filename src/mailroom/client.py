"""Mailroom: the context store and message queue behind one storage handle."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog

from mailroom.models.config import MailroomConfig
from mailroom.store.context import ScopedContextStore
from mailroom.store.handle import StorageHandle
from mailroom.store.pool import StorePool
from mailroom.store.queue import MessageQueue


class Mailroom:
    """
    Owns a ``StorageHandle`` and the two components built on it.

    Usage::

        async with Mailroom.open(db_path="/tmp/mailroom.db") as mailroom:
            message_id = await mailroom.queue.send("proj", "bob", "alice", "hi")
            await mailroom.context.set(GLOBAL, "build", "green")

        # Manual lifecycle
        mailroom = await Mailroom.create()
        ...
        await mailroom.close()

    The components do not depend on this class; a dispatch layer that
    manages its own handle can construct ``ScopedContextStore`` and
    ``MessageQueue`` directly.
    """

    def __init__(self, handle: StorageHandle, config: MailroomConfig) -> None:
        self._handle = handle
        self._config = config
        self.context = ScopedContextStore(handle)
        self.queue = MessageQueue(handle)

    @classmethod
    async def create(
        cls,
        *,
        config: MailroomConfig | None = None,
        db_path: str | None = None,
        pool: StorePool | None = None,
    ) -> Mailroom:
        """
        Open the database and return a ready Mailroom.

        Args:
            config: Mailroom configuration. Defaults to ``MailroomConfig.from_env()``.
            db_path: Override the database path (useful for testing).
            pool: Optional shared connection pool; the caller closes it.

        Raises:
            StorageUnavailableError: If the database cannot be opened.
        """
        cfg = config or MailroomConfig.from_env()
        if db_path is not None:
            cfg = cfg.model_copy(
                update={"store": cfg.store.model_copy(update={"db_path": db_path})}
            )
        handle = StorageHandle(cfg.store, pool=pool)
        await handle.initialize()
        structlog.get_logger("mailroom").info("mailroom_opened", db_path=handle.db_path)
        return cls(handle, cfg)

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        *,
        config: MailroomConfig | None = None,
        db_path: str | None = None,
        pool: StorePool | None = None,
    ) -> AsyncGenerator[Mailroom, None]:
        """Create a Mailroom and close it when the block exits."""
        mailroom = await cls.create(config=config, db_path=db_path, pool=pool)
        try:
            yield mailroom
        finally:
            await mailroom.close()

    @property
    def handle(self) -> StorageHandle:
        return self._handle

    @property
    def config(self) -> MailroomConfig:
        return self._config

    async def close(self) -> None:
        """Release the storage handle."""
        await self._handle.close()

    async def __aenter__(self) -> Mailroom:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
