"""SQLite-backed conversation storage."""

from __future__ import annotations

import logging
import sqlite3
from typing import Protocol

from convrag.constants import CONVERSATION_SOURCE_TYPE, UNINDEXED_BATCH_LIMIT
from convrag.conversations.models import Conversation, Message
from convrag.db.connection import Database
from convrag.vectorstore.documents import purge_documents
from convrag.vectorstore.models import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


class ConversationSource(Protocol):
    """Anything that can list known conversations."""

    async def load_conversations(self, limit: int) -> list[Conversation]: ...


class ConversationStore:
    """Reads and writes conversations and their messages."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def save_conversation(self, conversation: Conversation) -> None:
        """Insert or replace a conversation together with all its messages."""
        async with self._db.write_transaction():
            self._db.execute(
                """
                INSERT INTO conversations
                    (id, title, library_id, model_used, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    library_id = excluded.library_id,
                    model_used = excluded.model_used,
                    updated_at = excluded.updated_at
                """,
                (
                    conversation.id,
                    conversation.title,
                    conversation.library_id,
                    conversation.model_used,
                    format_timestamp(conversation.created_at),
                    format_timestamp(conversation.updated_at),
                ),
            )
            self._db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation.id,)
            )
            self._db.executemany(
                """
                INSERT INTO messages
                    (id, conversation_id, content, is_user, timestamp, library_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        m.id,
                        conversation.id,
                        m.content,
                        int(m.is_user),
                        format_timestamp(m.timestamp),
                        m.library_id,
                    )
                    for m in conversation.messages
                ],
            )

    async def get(self, conversation_id: str) -> Conversation | None:
        """Load one conversation with its messages."""
        row = self._db.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        return self._row_to_conversation(row) if row is not None else None

    async def load_conversations(self, limit: int = 50, offset: int = 0) -> list[Conversation]:
        """Load conversations, most recently updated first."""
        rows = self._db.execute(
            "SELECT * FROM conversations ORDER BY updated_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def load_unindexed_conversations(
        self, limit: int = UNINDEXED_BATCH_LIMIT
    ) -> list[Conversation]:
        """Load conversations that have no indexed documents yet."""
        rows = self._db.execute(
            """
            SELECT c.* FROM conversations c
            WHERE NOT EXISTS (
                SELECT 1 FROM rag_documents r
                WHERE r.source_id = c.id AND r.source_type = ?
            )
            ORDER BY c.updated_at DESC, c.rowid DESC
            LIMIT ?
            """,
            (CONVERSATION_SOURCE_TYPE, limit),
        ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation, its messages and everything indexed from it.

        Returns:
            True if the conversation existed.
        """
        async with self._db.write_transaction():
            purged = purge_documents(
                self._db,
                "source_type = ? AND source_id = ?",
                (CONVERSATION_SOURCE_TYPE, conversation_id),
            )
            cursor = self._db.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
        if cursor.rowcount:
            logger.info(f"Deleted conversation {conversation_id} ({purged} indexed documents)")
        return cursor.rowcount > 0

    def _row_to_conversation(self, row: sqlite3.Row) -> Conversation:
        message_rows = self._db.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY timestamp, rowid",
            (row["id"],),
        ).fetchall()
        messages = [
            Message(
                id=m["id"],
                content=m["content"],
                is_user=bool(m["is_user"]),
                timestamp=parse_timestamp(m["timestamp"]),
                library_id=m["library_id"],
            )
            for m in message_rows
        ]
        return Conversation(
            id=row["id"],
            title=row["title"],
            messages=messages,
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            library_id=row["library_id"],
            model_used=row["model_used"],
        )
