"""In-memory repository implementation."""

from typing import Dict, List, Optional

import structlog

from ..domain.exceptions import StorageError
from ..domain.models import Conversation, Message, utcnow
from .base import ConversationRepository

logger = structlog.get_logger()


class InMemoryRepository(ConversationRepository):
    """Dict-backed repository. Data is lost when the process exits."""

    def __init__(self) -> None:
        super().__init__()
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        logger.info("repository_initialized", backend=self.backend_type)

    @property
    def backend_type(self) -> str:
        return "memory"

    async def list_conversations(self) -> List[Conversation]:
        """All conversations, most recently updated first."""
        return sorted(
            self._conversations.values(),
            key=lambda c: c.updated_at,
            reverse=True
        )

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
        return conversation

    async def create_conversation(self, title: Optional[str] = None) -> Conversation:
        """Create a new conversation."""
        conversation = Conversation(title=title)
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        logger.info("conversation_created", conversation_id=conversation.id)
        await self._notify_conversations()
        return conversation

    async def update_conversation(self, conversation: Conversation) -> None:
        async with self._write_lock(conversation.id):
            if conversation.id not in self._conversations:
                raise StorageError(f"Conversation {conversation.id} not found")
            self._conversations[conversation.id] = conversation
        logger.info("conversation_updated", conversation_id=conversation.id)
        await self._notify_conversations()

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._write_lock(conversation_id):
            self._conversations.pop(conversation_id, None)
            removed = self._messages.pop(conversation_id, [])
        self._write_locks.pop(conversation_id, None)
        logger.info(
            "conversation_deleted",
            conversation_id=conversation_id,
            messages_deleted=len(removed)
        )
        await self._notify_conversations()
        await self._notify_messages(conversation_id)

    async def get_messages(self, conversation_id: str) -> List[Message]:
        """Point read of a conversation's messages, oldest first."""
        return list(self._messages.get(conversation_id, []))

    async def save_message(self, conversation_id: str, message: Message) -> None:
        await self.save_messages(conversation_id, [message])

    async def save_messages(self, conversation_id: str, messages: List[Message]) -> None:
        async with self._write_lock(conversation_id):
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.error(
                    "conversation_not_found_for_message",
                    conversation_id=conversation_id
                )
                raise StorageError(f"Conversation {conversation_id} not found")

            stored = self._messages.setdefault(conversation_id, [])
            for message in messages:
                # Same id replaces the earlier row in place
                for index, existing in enumerate(stored):
                    if existing.id == message.id:
                        stored[index] = message
                        break
                else:
                    stored.append(message)

            self._conversations[conversation_id] = conversation.model_copy(
                update={"updated_at": utcnow()}
            )

        for message in messages:
            logger.info(
                "message_added",
                conversation_id=conversation_id,
                message_role=message.role.value
            )
        await self._notify_messages(conversation_id)
        await self._notify_conversations()
