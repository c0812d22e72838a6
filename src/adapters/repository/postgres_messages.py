"""
PostgreSQL message repository - Implements MessageRepository protocol.

A direct conversation is keyed by the ordered pair of its participants
(``direct_key``), so two users opening a conversation with each other at
the same time end up sharing one row: the loser of the insert race sees
``ON CONFLICT DO NOTHING`` and reads the winner's conversation.
"""

import logging
import uuid
from datetime import datetime
from uuid import UUID

from psycopg.rows import dict_row

from src.domain.models import Conversation, Cursor, Message

from .postgres import PooledRepository

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = "id, conversation_id, sender_id, content, media_url, created_at"


def direct_key(user_a: UUID, user_b: UUID) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


def _conversation(row: dict) -> Conversation:
    return Conversation(id=row["id"], created_at=row["created_at"], updated_at=row["updated_at"])


class PostgresMessageRepository(PooledRepository):
    """Implements MessageRepository protocol via psycopg3."""

    def open_direct(self, user_a: UUID, user_b: UUID, now: datetime) -> tuple[Conversation, bool]:
        key = direct_key(user_a, user_b)
        with self._pool.connection() as conn, conn.transaction(), conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                """
                INSERT INTO conversations (id, direct_key, created_at, updated_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (direct_key) DO NOTHING
                RETURNING id, created_at, updated_at
                """,
                (uuid.uuid4(), key, now, now),
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "SELECT id, created_at, updated_at FROM conversations WHERE direct_key = %s",
                    (key,),
                )
                return _conversation(cursor.fetchone()), False

            cursor.executemany(
                "INSERT INTO conversation_participants (conversation_id, user_id) VALUES (%s, %s)",
                [(row["id"], user_a), (row["id"], user_b)],
            )
            logger.debug("Direct conversation %s created", row["id"])
            return _conversation(row), True

    def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        rows = self._fetchall(
            "SELECT id, created_at, updated_at FROM conversations WHERE id = %s", (conversation_id,)
        )
        return _conversation(rows[0]) if rows else None

    def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        rows = self._fetchall(
            "SELECT 1 FROM conversation_participants WHERE conversation_id = %s AND user_id = %s",
            (conversation_id, user_id),
        )
        return bool(rows)

    def participant_ids(self, conversation_id: UUID) -> list[UUID]:
        rows = self._fetchall(
            "SELECT user_id FROM conversation_participants WHERE conversation_id = %s",
            (conversation_id,),
        )
        return [row["user_id"] for row in rows]

    def list_conversations(self, user_id: UUID) -> list[Conversation]:
        rows = self._fetchall(
            """
            SELECT c.id, c.created_at, c.updated_at
            FROM conversation_participants cp
            JOIN conversations c ON c.id = cp.conversation_id
            WHERE cp.user_id = %s
            ORDER BY c.updated_at DESC, c.id DESC
            """,
            (user_id,),
        )
        return [_conversation(row) for row in rows]

    def last_message(self, conversation_id: UUID) -> Message | None:
        newest = self.list_messages(conversation_id, 1, None)
        return newest[0] if newest else None

    def last_read_at(self, conversation_id: UUID, user_id: UUID) -> datetime | None:
        rows = self._fetchall(
            """
            SELECT last_read_at FROM conversation_participants
            WHERE conversation_id = %s AND user_id = %s
            """,
            (conversation_id, user_id),
        )
        return rows[0]["last_read_at"] if rows else None

    def insert_message(self, message: Message) -> None:
        with self._pool.connection() as conn, conn.transaction(), conn.cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO messages ({_MESSAGE_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    message.id,
                    message.conversation_id,
                    message.sender_id,
                    message.content,
                    message.media_url,
                    message.created_at,
                ),
            )
            cursor.execute(
                "UPDATE conversations SET updated_at = %s WHERE id = %s",
                (message.created_at, message.conversation_id),
            )

    def list_messages(self, conversation_id: UUID, limit: int, cursor: Cursor | None) -> list[Message]:
        rows = self._fetchall(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE conversation_id = %(conversation)s
              AND (%(cursor_at)s::timestamptz IS NULL
                   OR (created_at, id) < (%(cursor_at)s::timestamptz, %(cursor_id)s::uuid))
            ORDER BY created_at DESC, id DESC
            LIMIT %(limit)s
            """,
            {
                "conversation": conversation_id,
                "cursor_at": cursor.created_at if cursor else None,
                "cursor_id": cursor.id if cursor else None,
                "limit": limit,
            },
        )
        return [Message(**row) for row in rows]

    def mark_read(self, conversation_id: UUID, user_id: UUID, at: datetime) -> None:
        self._rowcount(
            """
            UPDATE conversation_participants
            SET last_read_at = GREATEST(COALESCE(last_read_at, %(at)s), %(at)s)
            WHERE conversation_id = %(conversation)s AND user_id = %(user)s
            """,
            {"at": at, "conversation": conversation_id, "user": user_id},
        )

    def count_unread(self, user_id: UUID) -> int:
        rows = self._fetchall(
            """
            SELECT COUNT(*) AS unread
            FROM conversation_participants cp
            JOIN messages m ON m.conversation_id = cp.conversation_id
            WHERE cp.user_id = %(user)s
              AND m.sender_id <> %(user)s
              AND (cp.last_read_at IS NULL OR m.created_at > cp.last_read_at)
            """,
            {"user": user_id},
        )
        return rows[0]["unread"]
