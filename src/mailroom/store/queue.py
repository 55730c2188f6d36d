"""Per-(project, recipient) message queues with exactly-once consumption."""

from __future__ import annotations

import re

import aiosqlite
import structlog

from mailroom.errors import ContentTooLargeError, EmptyFieldError, InvalidMessageIdError
from mailroom.models.records import Message, now_ms
from mailroom.store.handle import StorageHandle

MAX_MESSAGE_SIZE = 1024 * 1024
"""Maximum UTF-8 size of a message body in bytes."""

DEFAULT_MESSAGE_LIMIT = 100
MAX_MESSAGE_LIMIT = 500

ANONYMOUS_SENDER = "anonymous"

_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)
_NUMERIC_ID_RE = re.compile(r"[+-]?[0-9]+")

_SELECT_QUEUE = """
    SELECT id, project_id, to_agent, from_agent, reference_id, content, created_at
    FROM messages
    WHERE project_id = ? AND to_agent = ?
    ORDER BY created_at ASC, id ASC
    LIMIT ?
"""


def resolve_sender(from_agent: str | None) -> str:
    """
    Apply the default-sender policy for callers that accept an optional sender.

    ``MessageQueue.send()`` rejects a blank ``from_agent``; request handlers
    that treat the sender as optional pass their input through this first.
    """
    if from_agent is None or not from_agent.strip():
        return ANONYMOUS_SENDER
    return from_agent


def effective_limit(limit: int | None) -> int:
    """Default a missing limit to 100 and clamp it into ``[0, 500]``."""
    if limit is None:
        return DEFAULT_MESSAGE_LIMIT
    return max(0, min(limit, MAX_MESSAGE_LIMIT))


def parse_message_id(message_id: str | int) -> int:
    """
    Convert a message id to its integer row id.

    Raises:
        InvalidMessageIdError: If the id is not a base-10 integer that fits
            in a signed 64-bit row id.
    """
    if isinstance(message_id, bool):
        raise InvalidMessageIdError(message_id)
    if isinstance(message_id, int):
        value = message_id
    elif isinstance(message_id, str) and _NUMERIC_ID_RE.fullmatch(message_id):
        value = int(message_id)
    else:
        raise InvalidMessageIdError(message_id)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise InvalidMessageIdError(message_id)
    return value


class MessageQueue:
    """
    FIFO queues of messages keyed by ``(project_id, to_agent)``.

    Messages are delivered oldest first, ordered by creation time and then by
    id.  ``receive()`` hands each message out at most once: the selected rows
    are deleted in the same transaction that reads them.  ``peek()`` reads
    the same rows without removing them.
    """

    def __init__(self, handle: StorageHandle) -> None:
        self._handle = handle
        self._logger = structlog.get_logger("mailroom.store.queue")

    async def send(
        self,
        project_id: str,
        to_agent: str,
        from_agent: str,
        content: str,
        reference_id: str | None = None,
    ) -> str:
        """
        Append a message to the tail of the ``(project_id, to_agent)`` queue.

        Args:
            project_id: Queue namespace (e.g. ``"owner/repo"``).
            to_agent: Recipient agent id.
            from_agent: Sender agent id. Use ``resolve_sender()`` to default
                a missing sender to ``"anonymous"`` before calling.
            content: Message body, at most 1,048,576 UTF-8 bytes.
            reference_id: Optional id of the message being answered.

        Returns:
            The new message id.

        Raises:
            EmptyFieldError: If ``project_id``, ``to_agent`` or ``from_agent``
                is blank.
            ContentTooLargeError: If ``content`` is too large.
        """
        for field, value in (
            ("project_id", project_id),
            ("to_agent", to_agent),
            ("from_agent", from_agent),
        ):
            if not value.strip():
                raise EmptyFieldError(field)
        size = len(content.encode("utf-8"))
        if size > MAX_MESSAGE_SIZE:
            raise ContentTooLargeError(size, MAX_MESSAGE_SIZE)

        async with self._handle.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO messages
                    (project_id, to_agent, from_agent, reference_id, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (project_id, to_agent, from_agent, reference_id, content, now_ms()),
            )
            message_id = str(cursor.lastrowid)

        self._logger.info(
            "message_sent",
            message_id=message_id,
            project_id=project_id,
            to_agent=to_agent,
            from_agent=from_agent,
            size=size,
        )
        return message_id

    async def receive(
        self, project_id: str, agent_id: str, limit: int | None = None
    ) -> list[Message]:
        """
        Consume up to ``limit`` of the oldest messages in a queue.

        The select and the delete of exactly the selected ids run in one
        transaction: if anything fails the queue is left as it was, and a
        returned message is never returned again.

        Args:
            project_id: Queue namespace.
            agent_id: Recipient whose queue is read.
            limit: Maximum messages to take. Defaults to 100, capped at 500.

        Returns:
            The consumed messages, oldest first.
        """
        n = effective_limit(limit)
        if n == 0:
            return []

        async with self._handle.transaction() as conn:
            messages = await self._select(conn, project_id, agent_id, n)
            if messages:
                ids = [int(m.id) for m in messages]
                placeholders = ",".join("?" * len(ids))
                await conn.execute(f"DELETE FROM messages WHERE id IN ({placeholders})", ids)

        if messages:
            self._logger.info(
                "messages_received",
                project_id=project_id,
                agent_id=agent_id,
                count=len(messages),
                first_id=messages[0].id,
                last_id=messages[-1].id,
            )
        return messages

    async def peek(
        self, project_id: str, agent_id: str, limit: int | None = None
    ) -> list[Message]:
        """Return up to ``limit`` of the oldest messages without consuming them."""
        n = effective_limit(limit)
        if n == 0:
            return []
        async with self._handle.read() as conn:
            return await self._select(conn, project_id, agent_id, n)

    async def count(self, project_id: str, agent_id: str) -> int:
        """Return the number of messages waiting in a queue."""
        async with self._handle.read() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM messages WHERE project_id = ? AND to_agent = ?",
                (project_id, agent_id),
            ) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_message(self, message_id: str | int) -> bool:
        """
        Delete one message by id, whichever queue it is in.

        Returns:
            True if the message existed and was removed, False otherwise.

        Raises:
            InvalidMessageIdError: If ``message_id`` is not numeric.
        """
        row_id = parse_message_id(message_id)
        async with self._handle.transaction() as conn:
            cursor = await conn.execute("DELETE FROM messages WHERE id = ?", (row_id,))
            deleted = cursor.rowcount > 0
        self._logger.debug("message_deleted", message_id=row_id, deleted=deleted)
        return deleted

    # ── Private Helpers ────────────────────────────────────────────────────────

    async def _select(
        self, conn: aiosqlite.Connection, project_id: str, agent_id: str, limit: int
    ) -> list[Message]:
        async with conn.execute(_SELECT_QUEUE, (project_id, agent_id, limit)) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in rows]

    def _row_to_message(self, row: aiosqlite.Row) -> Message:
        return Message(
            id=str(row["id"]),
            project_id=row["project_id"],
            to_agent=row["to_agent"],
            from_agent=row["from_agent"],
            reference_id=row["reference_id"],
            content=row["content"],
            created_at=row["created_at"],
        )
