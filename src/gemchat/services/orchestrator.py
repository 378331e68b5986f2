"""Send-message use case.

Coordinates one user turn end to end: create the conversation on first use,
persist the user message, bound the context sent to the model by summarizing
long histories, call the model, persist the reply and name the conversation
after its first message.

Failures are raised unchanged. A user message that was already persisted is
left in place when the model call fails.
"""

import asyncio
from typing import List, Optional, Sequence
from weakref import WeakValueDictionary

import structlog

from ..domain.constants import (
    ASSISTANT_LABEL,
    DEFAULT_TITLE,
    MAX_TITLE_LENGTH,
    SUMMARY_ELLIPSIS,
    SUMMARY_PREFIX,
    SUMMARY_SNIPPET_LENGTH,
    SUMMARY_TAIL_TURNS,
    SUMMARY_THRESHOLD,
    SUMMARY_USER_TURNS,
    USER_LABEL,
)
from ..domain.models import Message, MessageRole, SendResult
from ..repositories.base import ConversationRepository
from .base import CompletionClient

logger = structlog.get_logger()


def generate_summary(messages: Sequence[Message]) -> str:
    """Truncation summary: the first user turns, then the latest turns."""
    lines = [
        f"{USER_LABEL}: {m.content[:SUMMARY_SNIPPET_LENGTH]}"
        for m in messages
        if m.role == MessageRole.USER
    ][:SUMMARY_USER_TURNS]

    tail = list(messages[-SUMMARY_TAIL_TURNS:])
    if tail:
        lines.append(SUMMARY_ELLIPSIS)
        for m in tail:
            label = USER_LABEL if m.role == MessageRole.USER else ASSISTANT_LABEL
            lines.append(f"{label}: {m.content[:SUMMARY_SNIPPET_LENGTH]}")

    return "\n".join(lines)


def build_outbound_messages(existing: Sequence[Message], user_message: Message) -> List[Message]:
    """History to send to the model for ``user_message``."""
    if len(existing) > SUMMARY_THRESHOLD:
        summary = Message(
            content=f"{SUMMARY_PREFIX}{generate_summary(existing)}",
            role=MessageRole.SYSTEM,
        )
        return [summary, user_message]
    return [*existing, user_message]


def derive_title(content: str) -> str:
    title = content[:MAX_TITLE_LENGTH]
    return title if title.strip() else DEFAULT_TITLE


class ConversationOrchestrator:
    """Runs the send-message flow against a repository and a completion client."""

    def __init__(self, repository: ConversationRepository, client: CompletionClient) -> None:
        self._repository = repository
        self._client = client
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def _lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def send(self, conversation_id: Optional[str], user_message: Message) -> SendResult:
        """Send ``user_message`` in ``conversation_id``, creating one if None."""
        final_id = conversation_id
        try:
            if final_id is None:
                final_id = (await self._repository.create_conversation()).id

            # Snapshot and user write form one step per conversation
            async with self._lock(final_id):
                existing = await self._repository.get_messages(final_id)
                is_first_message = not existing
                await self._repository.save_message(final_id, user_message)

            outbound = build_outbound_messages(existing, user_message)
            logger.info(
                "sending_to_model",
                conversation_id=final_id,
                history_size=len(existing),
                summarized=len(existing) > SUMMARY_THRESHOLD
            )
            reply = await self._client.send_message(outbound)

            assistant_message = Message(content=reply, role=MessageRole.ASSISTANT)
            await self._repository.save_message(final_id, assistant_message)

            if is_first_message:
                await self._update_title(final_id, user_message)
        except Exception as e:
            logger.error(
                "send_message_failed",
                conversation_id=final_id,
                error_type=type(e).__name__,
                error=str(e)
            )
            raise

        logger.info(
            "message_processed",
            conversation_id=final_id,
            user_message_length=len(user_message.content),
            ai_response_length=len(reply)
        )
        return SendResult(
            conversation_id=final_id,
            assistant_message=assistant_message,
            should_update_title=is_first_message,
        )

    async def _update_title(self, conversation_id: str, user_message: Message) -> None:
        conversation = await self._repository.get_conversation(conversation_id)
        if conversation is None:
            return
        title = derive_title(user_message.content)
        await self._repository.update_conversation(conversation.model_copy(update={"title": title}))
        logger.info("conversation_titled", conversation_id=conversation_id, title=title)
