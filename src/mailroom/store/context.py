"""Scoped key/value context store."""

from __future__ import annotations

import builtins

import aiosqlite
import structlog

from mailroom.errors import ContentTooLargeError, EmptyFieldError
from mailroom.models.records import ContextEntry, now_ms
from mailroom.models.scope import GLOBAL, GlobalScope, ProjectScope
from mailroom.store.handle import StorageHandle

MAX_CONTEXT_VALUE_SIZE = 64 * 1024
"""Maximum UTF-8 size of a context value in bytes."""


class ScopedContextStore:
    """
    Key/value records in the global scope or in one project's scope.

    The two kinds of scope are independent namespaces: ``"x"`` set globally
    and ``"x"`` set under project ``"p"`` are separate entries, and neither
    falls back to the other on lookup.

    Keys are trimmed of surrounding whitespace by every operation.
    """

    def __init__(self, handle: StorageHandle) -> None:
        self._handle = handle
        self._logger = structlog.get_logger("mailroom.store.context")

    async def set(self, scope: GlobalScope | ProjectScope, key: str, value: str) -> None:
        """
        Insert or overwrite ``key`` in ``scope`` and refresh its timestamp.

        Raises:
            EmptyFieldError: If ``key`` is blank.
            ContentTooLargeError: If ``value`` exceeds 65,536 bytes.
        """
        key = key.strip()
        if not key:
            raise EmptyFieldError("key")
        size = len(value.encode("utf-8"))
        if size > MAX_CONTEXT_VALUE_SIZE:
            raise ContentTooLargeError(size, MAX_CONTEXT_VALUE_SIZE)

        async with self._handle.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO context (project_id, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(project_id, key)
                    DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (scope.storage_key, key, value, now_ms()),
            )
        self._logger.debug("context_set", scope=str(scope), key=key, size=size)

    async def get(self, scope: GlobalScope | ProjectScope, key: str) -> str | None:
        """Return the value stored under ``key``, or None if there is none."""
        entry = await self.get_entry(scope, key)
        return entry.value if entry is not None else None

    async def get_entry(self, scope: GlobalScope | ProjectScope, key: str) -> ContextEntry | None:
        """Return the full record for ``key``, or None if there is none."""
        key = key.strip()
        if not key:
            return None
        async with self._handle.read() as conn:
            async with conn.execute(
                "SELECT key, value, updated_at FROM context WHERE project_id = ? AND key = ?",
                (scope.storage_key, key),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(scope, row)

    async def delete(self, scope: GlobalScope | ProjectScope, key: str) -> bool:
        """Remove ``key`` from ``scope``. Returns True if a row was removed."""
        key = key.strip()
        if not key:
            return False
        async with self._handle.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM context WHERE project_id = ? AND key = ?",
                (scope.storage_key, key),
            )
            deleted = cursor.rowcount > 0
        self._logger.debug("context_deleted", scope=str(scope), key=key, deleted=deleted)
        return deleted

    async def list(self, scope: GlobalScope | ProjectScope = GLOBAL) -> builtins.list[str]:
        """Return every key in ``scope``, sorted lexicographically."""
        async with self._handle.read() as conn:
            async with conn.execute(
                "SELECT key FROM context WHERE project_id = ? ORDER BY key",
                (scope.storage_key,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [row["key"] for row in rows]

    # ── Private Helpers ────────────────────────────────────────────────────────

    def _row_to_entry(self, scope: GlobalScope | ProjectScope, row: aiosqlite.Row) -> ContextEntry:
        return ContextEntry(
            scope=scope,
            key=row["key"],
            value=row["value"],
            updated_at=row["updated_at"],
        )
