"""SQLite repository backend.

Persists conversations and messages in a SQLite file through aiosqlite.
Messages reference their conversation with ``ON DELETE CASCADE`` so deleting
a conversation never leaves orphaned rows.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

import aiosqlite
import structlog

from ..domain.exceptions import StorageError
from ..domain.models import Conversation, Message, MessageRole, utcnow
from .base import ConversationRepository

logger = structlog.get_logger()


class SQLiteRepository(ConversationRepository):
    """SQLite-backed repository.

    Call ``connect()`` before use and ``disconnect()`` when done.
    """

    def __init__(self, path: Union[str, Path] = "./gemchat.db") -> None:
        super().__init__()
        self._db_path = Path(path)
        self._connection: Optional[aiosqlite.Connection] = None

    @property
    def backend_type(self) -> str:
        return "sqlite"

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._connection is not None:
            return
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._create_schema()
        except (aiosqlite.Error, OSError) as e:
            logger.error("sqlite_connect_error", path=str(self._db_path), error=str(e))
            raise StorageError(f"Could not open database: {e}") from e
        logger.info("repository_initialized", backend=self.backend_type, path=str(self._db_path))

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                title TEXT
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id, seq)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close the database connection."""
        await super().disconnect()
        if self._connection:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def _db(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        if self._connection is None:
            raise StorageError("Repository is not connected")
        try:
            yield self._connection
        except aiosqlite.Error as e:
            logger.error("sqlite_error", operation=operation, error=str(e))
            await self._rollback()
            raise StorageError(f"{operation} failed: {e}") from e
        except Exception:
            await self._rollback()
            raise

    async def _rollback(self) -> None:
        # Drop a partially applied batch from the shared connection
        if self._connection is not None and self._connection.in_transaction:
            await self._connection.rollback()

    async def list_conversations(self) -> List[Conversation]:
        async with self._db("list_conversations") as db:
            async with db.execute(
                "SELECT id, created_at, updated_at, title FROM conversations "
                "ORDER BY updated_at DESC"
            ) as cursor:
                rows = await cursor.fetchall()
        return [_to_conversation(row) for row in rows]

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._db("get_conversation") as db:
            async with db.execute(
                "SELECT id, created_at, updated_at, title FROM conversations WHERE id = ?",
                (conversation_id,)
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None
        return _to_conversation(row)

    async def create_conversation(self, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title)
        async with self._db("create_conversation") as db:
            await db.execute(
                "INSERT INTO conversations (id, created_at, updated_at, title) VALUES (?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.created_at.isoformat(timespec="microseconds"),
                    conversation.updated_at.isoformat(timespec="microseconds"),
                    conversation.title,
                )
            )
            await db.commit()
        logger.info("conversation_created", conversation_id=conversation.id)
        await self._notify_conversations()
        return conversation

    async def update_conversation(self, conversation: Conversation) -> None:
        async with self._write_lock(conversation.id):
            async with self._db("update_conversation") as db:
                cursor = await db.execute(
                    "UPDATE conversations SET created_at = ?, updated_at = ?, title = ? WHERE id = ?",
                    (
                        conversation.created_at.isoformat(timespec="microseconds"),
                        conversation.updated_at.isoformat(timespec="microseconds"),
                        conversation.title,
                        conversation.id,
                    )
                )
                await db.commit()
                if cursor.rowcount == 0:
                    raise StorageError(f"Conversation {conversation.id} not found")
        logger.info("conversation_updated", conversation_id=conversation.id)
        await self._notify_conversations()

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._write_lock(conversation_id):
            async with self._db("delete_conversation") as db:
                await db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
                await db.commit()
        self._write_locks.pop(conversation_id, None)
        logger.info("conversation_deleted", conversation_id=conversation_id)
        await self._notify_conversations()
        await self._notify_messages(conversation_id)

    async def get_messages(self, conversation_id: str) -> List[Message]:
        async with self._db("get_messages") as db:
            async with db.execute(
                "SELECT id, role, content, created_at FROM messages "
                "WHERE conversation_id = ? ORDER BY seq ASC",
                (conversation_id,)
            ) as cursor:
                rows = await cursor.fetchall()
        return [_to_message(row) for row in rows]

    async def save_message(self, conversation_id: str, message: Message) -> None:
        await self.save_messages(conversation_id, [message])

    async def save_messages(self, conversation_id: str, messages: List[Message]) -> None:
        async with self._write_lock(conversation_id):
            async with self._db("save_messages") as db:
                async with db.execute(
                    "SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)
                ) as cursor:
                    exists = await cursor.fetchone()
                if exists is None:
                    logger.error(
                        "conversation_not_found_for_message",
                        conversation_id=conversation_id
                    )
                    raise StorageError(f"Conversation {conversation_id} not found")

                await db.executemany(
                    """
                    INSERT INTO messages (id, conversation_id, role, content, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        role = excluded.role,
                        content = excluded.content,
                        created_at = excluded.created_at
                    """,
                    [
                        (
                            message.id,
                            conversation_id,
                            message.role.value,
                            message.content,
                            message.timestamp.isoformat(timespec="microseconds"),
                        )
                        for message in messages
                    ]
                )
                await db.execute(
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (utcnow().isoformat(timespec="microseconds"), conversation_id)
                )
                await db.commit()

        logger.info(
            "messages_added",
            conversation_id=conversation_id,
            count=len(messages)
        )
        await self._notify_messages(conversation_id)
        await self._notify_conversations()


def _to_conversation(row: aiosqlite.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        title=row["title"],
    )


def _to_message(row: aiosqlite.Row) -> Message:
    return Message(
        id=row["id"],
        role=MessageRole(row["role"]),
        content=row["content"],
        timestamp=datetime.fromisoformat(row["created_at"]),
    )
