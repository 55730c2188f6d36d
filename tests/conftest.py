"""Shared fixtures for Mailroom tests."""

from __future__ import annotations

import pytest
import pytest_asyncio

from mailroom.models.config import MailroomConfig, StoreConfig
from mailroom.store.context import ScopedContextStore
from mailroom.store.handle import StorageHandle
from mailroom.store.pool import StorePool
from mailroom.store.queue import MessageQueue


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def config(db_path):
    """MailroomConfig with a temp database path."""
    return MailroomConfig(store=StoreConfig(db_path=db_path))


@pytest_asyncio.fixture
async def pool():
    """StorePool for the test database. Closed after each test."""
    p = StorePool()
    yield p
    await p.close_all()


@pytest_asyncio.fixture
async def handle(config, pool):
    """Initialized StorageHandle backed by a temp SQLite database (pool-managed)."""
    h = StorageHandle(config.store, pool=pool)
    await h.initialize()
    yield h
    await h.close()  # pool fixture closes the connection


@pytest.fixture
def context_store(handle):
    return ScopedContextStore(handle)


@pytest.fixture
def queue(handle):
    return MessageQueue(handle)


async def send_many(queue: MessageQueue, count: int, *, project: str = "p", to: str = "bob") -> list[str]:
    """Send ``count`` messages with contents ``m0``..``m{count-1}`` and return their ids."""
    return [await queue.send(project, to, "alice", f"m{i}") for i in range(count)]
