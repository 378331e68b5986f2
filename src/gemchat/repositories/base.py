"""Base repository interface."""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..domain.models import Conversation, Message
from ..domain.streams import Subject, Subscription


class ConversationRepository(ABC):
    """Ordered storage of conversations and their messages.

    Messages of a conversation are returned in insertion order. Saving a
    message bumps the owning conversation's ``updated_at``; deleting a
    conversation deletes its messages. Writes are serialized per conversation.
    """

    def __init__(self) -> None:
        self._write_locks: Dict[str, asyncio.Lock] = {}
        self._conversations_subject: Optional[Subject[List[Conversation]]] = None
        self._message_subjects: Dict[str, Subject[List[Message]]] = {}
        self._streams_lock: Optional[asyncio.Lock] = None

    async def connect(self) -> None:
        """Open the backing store."""

    async def disconnect(self) -> None:
        """Release the backing store and end live streams."""
        if self._conversations_subject is not None:
            self._conversations_subject.close()
        for subject in self._message_subjects.values():
            subject.close()
        self._conversations_subject = None
        self._message_subjects.clear()

    @abstractmethod
    async def list_conversations(self) -> List[Conversation]:
        """All conversations, most recently updated first."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""

    @abstractmethod
    async def create_conversation(self, title: Optional[str] = None) -> Conversation:
        """Create a new conversation."""

    @abstractmethod
    async def update_conversation(self, conversation: Conversation) -> None:
        """Replace a stored conversation's fields."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all of its messages."""

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> List[Message]:
        """Point read of a conversation's messages, oldest first."""

    @abstractmethod
    async def save_message(self, conversation_id: str, message: Message) -> None:
        """Append a message to a conversation."""

    @abstractmethod
    async def save_messages(self, conversation_id: str, messages: List[Message]) -> None:
        """Append several messages in order."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Backend identifier."""

    async def watch_conversations(self) -> Subscription[List[Conversation]]:
        """Live stream of ``list_conversations`` results."""
        async with self._streams():
            if self._conversations_subject is None:
                self._conversations_subject = Subject(
                    await self.list_conversations(), name="conversations"
                )
            return self._conversations_subject.subscribe()

    async def watch_messages(self, conversation_id: str) -> Subscription[List[Message]]:
        """Live stream of ``get_messages`` results for one conversation."""
        async with self._streams():
            subject = self._message_subjects.get(conversation_id)
            if subject is None:
                subject = Subject(
                    await self.get_messages(conversation_id),
                    name=f"messages:{conversation_id}",
                )
                self._message_subjects[conversation_id] = subject
            return subject.subscribe()

    def _write_lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(conversation_id)
        if lock is None:
            lock = self._write_locks[conversation_id] = asyncio.Lock()
        return lock

    def _streams(self) -> asyncio.Lock:
        # Subject creation and publishing share one lock so a first
        # subscriber never misses a write made while its snapshot is read
        if self._streams_lock is None:
            self._streams_lock = asyncio.Lock()
        return self._streams_lock

    async def _notify_conversations(self) -> None:
        async with self._streams():
            if self._conversations_subject is not None:
                self._conversations_subject.publish(await self.list_conversations())

    async def _notify_messages(self, conversation_id: str) -> None:
        async with self._streams():
            subject = self._message_subjects.get(conversation_id)
            if subject is not None:
                subject.publish(await self.get_messages(conversation_id))
