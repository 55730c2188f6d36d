"""
Per-file connection sharing for StorageHandle.

Handles built with the same ``StorePool`` and database path share one
connection and one lock, so they are serialised against each other exactly as
if they were a single handle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import aiosqlite
import structlog

_logger = structlog.get_logger("mailroom.store.pool")


def resolve_path(db_path: str) -> str:
    """Expand ``~`` and make *db_path* absolute."""
    return str(Path(db_path).expanduser().resolve())


async def connect(
    db_path: str,
    *,
    wal_mode: bool = True,
    connection_timeout: float = 30.0,
) -> aiosqlite.Connection:
    """
    Open a configured connection to *db_path*, creating its directory.

    The connection runs in autocommit mode (``isolation_level=None``);
    ``StorageHandle`` issues ``BEGIN``/``COMMIT`` itself.

    Raises:
        OSError: If the parent directory cannot be created.
        aiosqlite.Error: If the database cannot be opened or configured.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path, timeout=connection_timeout, isolation_level=None)
    try:
        conn.row_factory = aiosqlite.Row
        if wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except Exception:
        await conn.close()
        raise
    return conn


@dataclass
class _Slot:
    conn: aiosqlite.Connection
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class StorePool:
    """
    One shared connection and lock per resolved database path.

    Create it at startup, pass it to every ``StorageHandle`` and call
    ``close_all()`` at shutdown. Bound to a single event loop.
    """

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}
        self._opening: dict[str, asyncio.Lock] = {}

    async def acquire(
        self,
        db_path: str,
        *,
        wal_mode: bool = True,
        connection_timeout: float = 30.0,
    ) -> aiosqlite.Connection:
        """Return the shared connection for *db_path*, opening it on first use."""
        resolved = resolve_path(db_path)
        slot = self._slots.get(resolved)
        if slot is None:
            # Concurrent first callers wait for a single open.
            async with self._opening.setdefault(resolved, asyncio.Lock()):
                slot = self._slots.get(resolved)
                if slot is None:
                    conn = await connect(
                        resolved, wal_mode=wal_mode, connection_timeout=connection_timeout
                    )
                    slot = self._slots[resolved] = _Slot(conn)
                    _logger.debug("pool_connection_opened", db_path=resolved)
        return slot.conn

    def lock(self, db_path: str) -> asyncio.Lock:
        """
        Return the lock serialising all access to *db_path*.

        Raises ``KeyError`` if called before ``acquire()`` for this path.
        """
        return self._slots[resolve_path(db_path)].lock

    def is_open(self, db_path: str) -> bool:
        return resolve_path(db_path) in self._slots

    async def close_all(self) -> None:
        """Close every shared connection."""
        slots, self._slots = self._slots, {}
        self._opening.clear()
        for path, slot in slots.items():
            await slot.conn.close()
            _logger.debug("pool_connection_closed", db_path=path)
