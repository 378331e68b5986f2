"""Per-screen chat controller.

Holds the current conversation id and at most one in-flight send. Starting a
send, loading a conversation or starting a new one supersedes the previous
send: its task is cancelled and its token retired, so a completion that still
arrives is ignored.
"""

import asyncio
from typing import List, Optional

import structlog

from ..domain.models import Message, MessageRole
from ..domain.streams import Subject, Subscription
from ..repositories.base import ConversationRepository
from ..services.orchestrator import ConversationOrchestrator
from .state import (
    ConversationCleared,
    ErrorCleared,
    Event,
    InputChanged,
    LoadFailed,
    MessagesLoaded,
    MessageSubmitted,
    SendCancelled,
    SendFailed,
    SendSucceeded,
    SessionState,
    reduce,
)

logger = structlog.get_logger()


def _error_text(error: Exception) -> str:
    return getattr(error, "message", None) or str(error) or type(error).__name__


class SessionController:
    """Maps user intents to orchestrator calls and observable ``SessionState``.

    Must be used from a running event loop; operations schedule tasks and
    return immediately.
    """

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        repository: ConversationRepository,
    ) -> None:
        self._orchestrator = orchestrator
        self._repository = repository
        self._state = Subject(SessionState(), name="session")
        self._conversation_id: Optional[str] = None
        self._send_task: Optional[asyncio.Task] = None
        self._send_token: Optional[object] = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        """Latest published state."""
        return self._state.value

    @property
    def conversation_id(self) -> Optional[str]:
        """Current conversation, or None before the first send of a new one."""
        return self._conversation_id

    def subscribe(self) -> Subscription[SessionState]:
        """Stream of states, starting with the current one."""
        return self._state.subscribe()

    def _dispatch(self, event: Event) -> None:
        current = self._state.value
        updated = reduce(current, event)
        if updated is not current:
            self._state.publish(updated)

    def _cancel_send(self) -> None:
        task, self._send_task = self._send_task, None
        self._send_token = None
        if task is not None and not task.done():
            task.cancel()
            self._dispatch(SendCancelled())
            logger.info("send_cancelled", conversation_id=self._conversation_id)

    def _cancel_load(self) -> None:
        task, self._load_task = self._load_task, None
        if task is not None and not task.done():
            task.cancel()

    def load_conversation(self, conversation_id: str) -> None:
        """Switch to ``conversation_id`` and load its messages in the background.

        Any in-flight send is cancelled. Input text is left as it is.
        """
        self._cancel_send()
        self._cancel_load()
        self._conversation_id = conversation_id
        self._load_task = asyncio.create_task(self._load(conversation_id))

    async def _load(self, conversation_id: str) -> None:
        try:
            messages = await self._repository.get_messages(conversation_id)
        except Exception as e:
            logger.error("load_conversation_failed", conversation_id=conversation_id, error=str(e))
            if conversation_id == self._conversation_id:
                self._dispatch(LoadFailed(error=_error_text(e)))
            return
        if conversation_id != self._conversation_id:
            return
        self._dispatch(MessagesLoaded(messages=tuple(messages)))
        logger.info("conversation_loaded", conversation_id=conversation_id, messages=len(messages))

    def create_new_conversation(self) -> None:
        """Start over with an empty screen and no current conversation."""
        # The conversation itself is created by the first send
        self._cancel_send()
        self._cancel_load()
        self._conversation_id = None
        self._dispatch(ConversationCleared())

    def update_input_text(self, text: str) -> None:
        """Replace the draft text unless a send is pending."""
        if not self.state.is_input_enabled:
            return
        self._dispatch(InputChanged(text=text))

    def send_message(self, text: str) -> None:
        """Send ``text`` as a user message.

        The message is shown immediately and the reply is awaited in a
        background task. Blank text, or text sent while a reply is pending,
        is ignored.
        """
        if not text or not text.strip():
            return
        if not self.state.is_input_enabled:
            return

        self._cancel_send()

        user_message = Message(content=text.strip(), role=MessageRole.USER)
        self._dispatch(MessageSubmitted(message=user_message))

        token = object()
        self._send_token = token
        self._send_task = asyncio.create_task(
            self._send(token, self._conversation_id, user_message)
        )

    async def _send(self, token: object, conversation_id: Optional[str], user_message: Message) -> None:
        try:
            result = await self._orchestrator.send(conversation_id, user_message)
        except Exception as e:
            if token is not self._send_token:
                logger.info("stale_send_ignored", conversation_id=conversation_id)
                return
            self._send_task = None
            self._send_token = None
            # Only a brand-new conversation loses its optimistic message
            self._dispatch(SendFailed(
                error=_error_text(e),
                rollback=self._conversation_id is None,
            ))
            return

        if token is not self._send_token:
            logger.info("stale_send_ignored", conversation_id=result.conversation_id)
            return
        self._send_task = None
        self._send_token = None

        if self._conversation_id is None:
            self._conversation_id = result.conversation_id

        if self._conversation_id == result.conversation_id:
            self._dispatch(SendSucceeded(assistant_message=result.assistant_message))
        else:
            logger.info(
                "send_result_discarded",
                result_conversation_id=result.conversation_id,
                current_conversation_id=self._conversation_id
            )

    def clear_error(self) -> None:
        """Dismiss the current error."""
        self._dispatch(ErrorCleared())

    async def wait_until_idle(self) -> None:
        """Wait for the current send and load tasks to finish."""
        tasks: List[asyncio.Task] = [
            t for t in (self._send_task, self._load_task) if t is not None
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work and end state subscriptions."""
        tasks = [t for t in (self._send_task, self._load_task) if t is not None and not t.done()]
        self._send_task = None
        self._send_token = None
        self._load_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._state.close()
