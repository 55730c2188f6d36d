"""Serialised access to the Mailroom SQLite database."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from mailroom.errors import StorageUnavailableError
from mailroom.models.config import StoreConfig
from mailroom.models.records import now_ms
from mailroom.store.pool import connect, resolve_path

if TYPE_CHECKING:
    from mailroom.store.pool import StorePool

_STORAGE_ERRORS = (aiosqlite.Error, OSError)

# Tables written by earlier layouts of the store.
_LEGACY_UNVERSIONED = "context_unversioned"
_LEGACY_GLOBAL = "global_context"
_LEGACY_PROJECT = "project_context"
# Message table whose created_at held ISO-8601 text.
_LEGACY_MESSAGES = "messages_text_timestamps"


class StorageHandle:
    """
    The single owner of the database connection.

    Every operation runs inside the handle's critical section: ``read()`` for
    single-statement queries and ``transaction()`` for anything that writes.
    Only one critical section is active at a time, so multi-statement units
    such as "select N then delete N" never interleave with other callers.

    When a ``StorePool`` is supplied the handle borrows the pool's connection
    and lock for its path; ``close()`` then leaves the connection open (the
    pool owns its lifetime).  Without a pool the handle opens and closes a
    private connection.

    Usage::

        handle = StorageHandle(StoreConfig(db_path="/tmp/mailroom.db"))
        await handle.initialize()
        try:
            queue = MessageQueue(handle)
            await queue.send("proj", "bob", "alice", "hi")
        finally:
            await handle.close()
    """

    def __init__(self, config: StoreConfig, pool: StorePool | None = None) -> None:
        self._config = config
        self._db_path = resolve_path(config.db_path)
        self._pool = pool
        self._conn: aiosqlite.Connection | None = None
        self._lock: asyncio.Lock | None = None
        self._logger = structlog.get_logger("mailroom.store")

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        """
        Open (or borrow) the connection, apply the schema and migrate legacy tables.

        Idempotent: calling it on an open handle does nothing.

        Raises:
            StorageUnavailableError: If the database cannot be opened or the
                schema cannot be applied.
        """
        if self._conn is not None:
            return

        conn: aiosqlite.Connection | None = None
        try:
            if self._pool is not None:
                conn = await self._pool.acquire(
                    self._db_path,
                    wal_mode=self._config.wal_mode,
                    connection_timeout=self._config.connection_timeout,
                )
                lock = self._pool.lock(self._db_path)
            else:
                conn = await connect(
                    self._db_path,
                    wal_mode=self._config.wal_mode,
                    connection_timeout=self._config.connection_timeout,
                )
                lock = asyncio.Lock()

            async with lock:
                await self._apply_schema(conn)
        except (StorageUnavailableError, *_STORAGE_ERRORS) as exc:
            if conn is not None and self._pool is None:
                await conn.close()
            self._logger.error("store_open_failed", db_path=self._db_path, error=str(exc))
            raise StorageUnavailableError(
                f"Cannot open database at {self._db_path}: {exc}"
            ) from exc

        self._conn = conn
        self._lock = lock
        self._logger.info("store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """
        Release the database connection.

        A private connection is closed; a pool-managed one is left open.
        Waits for any in-flight operation to finish first.
        """
        if self._conn is None or self._lock is None:
            return
        async with self._lock:
            conn, self._conn = self._conn, None
            if self._pool is None:
                await conn.close()
        self._logger.debug("store_closed", db_path=self._db_path)

    # ── Critical sections ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the lock for a read-only unit of work."""
        async with self._acquire() as conn:
            try:
                yield conn
            except _STORAGE_ERRORS as exc:
                raise StorageUnavailableError(f"Database read failed: {exc}") from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Hold the lock and run the body inside one ``BEGIN IMMEDIATE`` transaction.

        The transaction commits when the body returns and rolls back when it
        raises, so its statements take effect together or not at all.

        ``BEGIN`` and ``COMMIT`` always run to completion, even if the calling
        task is cancelled while waiting for them. A cancellation that arrives
        during ``BEGIN`` rolls back and is re-raised. One that arrives during a
        ``COMMIT`` that succeeds is withdrawn, and the body's writes and the
        caller's result both stand.
        """
        async with self._acquire() as conn:
            async with self._atomic(conn):
                yield conn

    # ── Private helpers ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._lock is None:
            raise StorageUnavailableError("Store is not initialized. Call initialize() first.")
        async with self._lock:
            # Re-check under the lock: close() may have run while we waited.
            if self._conn is None:
                raise StorageUnavailableError("Store is closed.")
            yield self._conn

    @asynccontextmanager
    async def _atomic(self, conn: aiosqlite.Connection) -> AsyncIterator[None]:
        try:
            cancelled = await self._settle(conn, "BEGIN IMMEDIATE")
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailableError(f"Cannot begin transaction: {exc}") from exc
        if cancelled:
            await self._rollback(conn, asyncio.CancelledError())
            raise asyncio.CancelledError()

        try:
            yield
        except BaseException as exc:
            await self._rollback(conn, exc)
            if isinstance(exc, _STORAGE_ERRORS):
                raise StorageUnavailableError(f"Database write failed: {exc}") from exc
            raise

        try:
            cancelled = await self._settle(conn, "COMMIT")
        except BaseException as exc:
            await self._rollback(conn, exc)
            if isinstance(exc, _STORAGE_ERRORS):
                raise StorageUnavailableError(f"Database write failed: {exc}") from exc
            raise
        if cancelled:
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            self._logger.info("cancellation_withdrawn_after_commit", db_path=self._db_path)

    async def _execute(self, conn: aiosqlite.Connection, statement: str) -> None:
        await conn.execute(statement)

    async def _settle(self, conn: aiosqlite.Connection, statement: str) -> bool:
        """
        Run ``statement`` and wait for its outcome even if this task is cancelled.

        aiosqlite keeps running a statement on its worker thread after the
        awaiting coroutine is cancelled, so the transaction state is only known
        once the statement has finished.

        Returns:
            True if a cancellation arrived while waiting.

        Raises:
            asyncio.CancelledError: If cancelled while waiting and the statement failed.
        """
        pending = asyncio.ensure_future(self._execute(conn, statement))
        cancelled = False
        while not pending.done():
            try:
                await asyncio.wait({pending})
            except asyncio.CancelledError:
                cancelled = True
        error = pending.exception()
        if error is not None:
            if cancelled:
                raise asyncio.CancelledError() from error
            raise error
        return cancelled

    async def _rollback(self, conn: aiosqlite.Connection, cause: BaseException) -> None:
        try:
            cancelled = await self._settle(conn, "ROLLBACK")
        except aiosqlite.Error as exc:
            # Every earlier statement has finished, so in_transaction is current.
            if conn.in_transaction:
                self._logger.warning("rollback_failed", error=str(exc), cause=repr(cause))
            return
        self._logger.debug("transaction_rolled_back", cause=repr(cause))
        if cancelled and not isinstance(cause, asyncio.CancelledError):
            raise asyncio.CancelledError() from cause

    async def _apply_schema(self, conn: aiosqlite.Connection) -> None:
        # Tables from earlier layouts are moved aside so schema.sql can create
        # the current ones; _migrate_legacy copies their rows across.
        tables = await _table_names(conn)
        if "context" in tables and "updated_at" not in await _column_types(conn, "context"):
            await conn.execute(f"ALTER TABLE context RENAME TO {_LEGACY_UNVERSIONED}")
        if "messages" in tables:
            created_at = (await _column_types(conn, "messages")).get("created_at")
            if created_at == "TEXT":
                # The index name would follow the renamed table.
                await conn.execute("DROP INDEX IF EXISTS idx_messages_queue")
                await conn.execute(f"ALTER TABLE messages RENAME TO {_LEGACY_MESSAGES}")

        schema = (Path(__file__).parent / "schema.sql").read_text()
        await conn.executescript(schema)
        await self._migrate_legacy(conn)

    async def _migrate_legacy(self, conn: aiosqlite.Connection) -> None:
        """Copy rows from legacy tables into ``context`` and ``messages`` and drop them."""
        tables = await _table_names(conn)
        legacy = [
            t
            for t in (_LEGACY_GLOBAL, _LEGACY_PROJECT, _LEGACY_UNVERSIONED, _LEGACY_MESSAGES)
            if t in tables
        ]
        if not legacy:
            return

        now = now_ms()
        copy_sql = {
            _LEGACY_GLOBAL: (
                "INSERT OR REPLACE INTO context (project_id, key, value, updated_at)"
                " SELECT '', key, value,"
                " COALESCE(CAST(strftime('%s', updated_at) AS INTEGER) * 1000, ?)"
                " FROM global_context ORDER BY rowid"
            ),
            _LEGACY_PROJECT: (
                "INSERT OR REPLACE INTO context (project_id, key, value, updated_at)"
                " SELECT project_id, key, value,"
                " COALESCE(CAST(strftime('%s', updated_at) AS INTEGER) * 1000, ?)"
                " FROM project_context WHERE TRIM(project_id) != '' ORDER BY rowid"
            ),
            # NULL project_id was the global scope. NULLs never conflicted in
            # the old primary key, so later duplicates replace earlier ones.
            _LEGACY_UNVERSIONED: (
                "INSERT OR REPLACE INTO context (project_id, key, value, updated_at)"
                f" SELECT COALESCE(project_id, ''), key, value, ? FROM {_LEGACY_UNVERSIONED}"
                " ORDER BY rowid"
            ),
            # ISO-8601 text timestamps become Unix milliseconds; ids are kept.
            _LEGACY_MESSAGES: (
                "INSERT INTO messages"
                " (id, project_id, to_agent, from_agent, reference_id, content, created_at)"
                " SELECT id, project_id, to_agent, from_agent, reference_id, content,"
                " COALESCE(CAST(strftime('%s', created_at) AS INTEGER) * 1000, ?)"
                f" FROM {_LEGACY_MESSAGES} ORDER BY id"
            ),
        }

        copied = 0
        async with self._atomic(conn):
            for table in legacy:
                cursor = await conn.execute(copy_sql[table], (now,))
                copied += max(cursor.rowcount, 0)
                if table == _LEGACY_MESSAGES:
                    # Carry the id counter over so consumed ids are never reissued.
                    await conn.execute("DELETE FROM sqlite_sequence WHERE name = 'messages'")
                    await conn.execute(
                        "UPDATE sqlite_sequence SET name = 'messages' WHERE name = ?", (table,)
                    )
                await conn.execute(f"DROP TABLE {table}")
        self._logger.info("legacy_tables_migrated", source_tables=legacy, rows=copied)


async def _table_names(conn: aiosqlite.Connection) -> set[str]:
    async with conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'") as cursor:
        rows = await cursor.fetchall()
    return {row["name"] for row in rows}


async def _column_types(conn: aiosqlite.Connection, table: str) -> dict[str, str]:
    async with conn.execute(f"PRAGMA table_info({table})") as cursor:
        rows = await cursor.fetchall()
    return {row["name"]: row["type"].upper() for row in rows}
