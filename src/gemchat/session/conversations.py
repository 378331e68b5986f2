"""Conversation list controller (the conversation drawer)."""

import asyncio
from typing import List, Optional

import structlog

from ..domain.models import Conversation
from ..domain.streams import Subscription
from ..repositories.base import ConversationRepository

logger = structlog.get_logger()


class ConversationListController:
    """Keeps ``conversations`` in sync with the store while started."""

    def __init__(self, repository: ConversationRepository) -> None:
        self._repository = repository
        self._conversations: List[Conversation] = []
        self._subscription: Optional[Subscription[List[Conversation]]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def conversations(self) -> List[Conversation]:
        return self._conversations

    async def start(self) -> None:
        if self._task is not None:
            return
        self._subscription = await self._repository.watch_conversations()
        self._task = asyncio.create_task(self._follow(self._subscription))

    async def _follow(self, subscription: Subscription[List[Conversation]]) -> None:
        async for conversations in subscription:
            self._conversations = conversations

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._task is not None:
            await self._task
            self._task = None

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._repository.delete_conversation(conversation_id)
        logger.info("conversation_delete_requested", conversation_id=conversation_id)
