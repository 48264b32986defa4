"""Conversation persistence service.

Keeps conversations and their messages in a dedicated SQLite database,
separate from the recipes database the retrieval engine reads.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from mealprep_assistant.application.exceptions import ConversationNotFoundError
from mealprep_assistant.domain.models import Conversation, ConversationSummary, Message

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'New conversation',
    selected_intent TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_message_at TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    sender TEXT NOT NULL CHECK(sender IN ('user', 'assistant')),
    content TEXT NOT NULL,
    message_type TEXT NOT NULL DEFAULT 'text' CHECK(message_type IN ('text', 'recipe')),
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_conversations_user_session ON conversations(user_id, session_id);
CREATE INDEX IF NOT EXISTS idx_messages_conversation_id ON messages(conversation_id);
"""


def _utcnow() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _load_json(value: str | None) -> dict:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ConversationStore:
    """CRUD operations for conversations stored in a dedicated SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()
        logger.info("Conversation DB ready at {}", self.db_path)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def find_latest_conversation(self, user_id: str, session_id: str) -> Conversation | None:
        """Return the most recently created conversation for a session key."""
        assert self.conn
        row = self.conn.execute(
            """
            SELECT * FROM conversations
            WHERE user_id = ? AND session_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (user_id, session_id),
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def create_conversation(
        self,
        user_id: str,
        session_id: str,
        title: str,
        selected_intent: str | None = None,
        metadata: dict | None = None,
    ) -> Conversation:
        assert self.conn
        conversation_id = str(uuid.uuid4())
        now = _utcnow()
        self.conn.execute(
            """
            INSERT INTO conversations
                (id, user_id, session_id, title, selected_intent, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                conversation_id,
                user_id,
                session_id,
                title,
                selected_intent,
                json.dumps(metadata or {}),
                now,
                now,
            ),
        )
        self.conn.commit()
        logger.info("Created conversation {} for session {}", conversation_id, session_id)
        return Conversation(
            id=conversation_id,
            user_id=user_id,
            session_id=session_id,
            title=title,
            selected_intent=selected_intent,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )

    def set_selected_intent(self, conversation_id: str, intent: str) -> None:
        """Pin a manually chosen intent on the conversation."""
        assert self.conn
        self.conn.execute(
            "UPDATE conversations SET selected_intent = ?, updated_at = ? WHERE id = ?",
            (intent, _utcnow(), conversation_id),
        )
        self.conn.commit()

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation | None:
        """Return a conversation owned by *user_id*, or None."""
        assert self.conn
        row = self.conn.execute(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def save_message(
        self,
        conversation_id: str,
        sender: str,
        content: str,
        message_type: str = "text",
        metadata: dict | None = None,
    ) -> Message:
        """Persist a message and bump the conversation's activity timestamps."""
        assert self.conn
        msg_id = str(uuid.uuid4())
        now = _utcnow()
        self.conn.execute(
            """
            INSERT INTO messages (id, conversation_id, sender, content, message_type, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (msg_id, conversation_id, sender, content, message_type, json.dumps(metadata or {}), now),
        )
        self.conn.execute(
            "UPDATE conversations SET updated_at = ?, last_message_at = ? WHERE id = ?",
            (now, now, conversation_id),
        )
        self.conn.commit()
        return Message(
            id=msg_id,
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            message_type=message_type,
            metadata=metadata or {},
            created_at=now,
        )

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        """Return up to *limit* newest messages, oldest first."""
        assert self.conn
        rows = self.conn.execute(
            """
            SELECT * FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (conversation_id, limit),
        ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def get_messages(self, conversation_id: str, user_id: str) -> list[Message]:
        """Return all messages in a conversation, ordered chronologically.

        Raises:
            ConversationNotFoundError: If the conversation does not exist or
                belongs to another user.
        """
        if self.get_conversation(conversation_id, user_id) is None:
            raise ConversationNotFoundError(conversation_id)
        assert self.conn
        rows = self.conn.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC",
            (conversation_id,),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Listing and deletion
    # ------------------------------------------------------------------

    def list_conversations(self, user_id: str, limit: int = 50) -> list[ConversationSummary]:
        """Return a user's conversations, most recently active first, with message counts."""
        assert self.conn
        rows = self.conn.execute(
            """
            SELECT c.id, c.title, c.session_id, c.selected_intent,
                   c.created_at, c.updated_at, c.last_message_at,
                   COUNT(m.id) AS message_count
            FROM conversations c
            LEFT JOIN messages m ON m.conversation_id = c.id
            WHERE c.user_id = ?
            GROUP BY c.id
            ORDER BY COALESCE(c.last_message_at, '') DESC, c.created_at DESC, c.rowid DESC
            LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
        return [
            ConversationSummary(
                id=row["id"],
                title=row["title"],
                session_id=row["session_id"],
                selected_intent=row["selected_intent"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                last_message_at=row["last_message_at"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete one conversation and its messages. Returns False if not found."""
        assert self.conn
        cursor = self.conn.execute(
            "DELETE FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_all_conversations(self, user_id: str) -> int:
        """Delete every conversation a user owns. Returns the number removed."""
        assert self.conn
        cursor = self.conn.execute("DELETE FROM conversations WHERE user_id = ?", (user_id,))
        self.conn.commit()
        logger.info("Deleted {} conversation(s) for user {}", cursor.rowcount, user_id)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            session_id=row["session_id"],
            title=row["title"],
            selected_intent=row["selected_intent"],
            metadata=_load_json(row["metadata"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_message_at=row["last_message_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender=row["sender"],
            content=row["content"],
            message_type=row["message_type"],
            metadata=_load_json(row["metadata"]),
            created_at=row["created_at"],
        )
