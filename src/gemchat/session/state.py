"""Chat screen state and the reducer that drives it.

``reduce`` is a pure function: it never touches the store, the model or the
controller, and always returns a new ``SessionState``.
"""

from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from ..domain.models import Message


class SessionState(BaseModel):
    """Observable state of one chat screen."""

    model_config = ConfigDict(frozen=True)

    messages: Tuple[Message, ...] = ()
    input_text: str = ""
    is_loading: bool = False
    error: Optional[str] = None

    @property
    def is_input_enabled(self) -> bool:
        return not self.is_loading


class SessionEvent(BaseModel):
    """Base of the events accepted by ``reduce``."""

    model_config = ConfigDict(frozen=True)


class MessagesLoaded(SessionEvent):
    messages: Tuple[Message, ...]


class LoadFailed(SessionEvent):
    error: str


class ConversationCleared(SessionEvent):
    pass


class InputChanged(SessionEvent):
    text: str


class MessageSubmitted(SessionEvent):
    message: Message


class SendSucceeded(SessionEvent):
    assistant_message: Message


class SendFailed(SessionEvent):
    error: str
    # Drop the optimistic user message (nothing was durably anchored)
    rollback: bool


class SendCancelled(SessionEvent):
    pass


class ErrorCleared(SessionEvent):
    pass


Event = Union[
    MessagesLoaded,
    LoadFailed,
    ConversationCleared,
    InputChanged,
    MessageSubmitted,
    SendSucceeded,
    SendFailed,
    SendCancelled,
    ErrorCleared,
]


def reduce(state: SessionState, event: Event) -> SessionState:
    """Apply ``event`` to ``state``."""
    if isinstance(event, MessagesLoaded):
        return state.model_copy(update={"messages": tuple(event.messages)})

    if isinstance(event, LoadFailed):
        return state.model_copy(update={"error": event.error})

    if isinstance(event, ConversationCleared):
        return state.model_copy(update={"messages": (), "input_text": ""})

    if isinstance(event, InputChanged):
        if not state.is_input_enabled:
            return state
        return state.model_copy(update={"input_text": event.text})

    if isinstance(event, MessageSubmitted):
        return state.model_copy(update={
            "messages": state.messages + (event.message,),
            "is_loading": True,
            "input_text": "",
        })

    if isinstance(event, SendSucceeded):
        return state.model_copy(update={
            "messages": state.messages + (event.assistant_message,),
            "is_loading": False,
        })

    if isinstance(event, SendFailed):
        messages = state.messages[:-1] if event.rollback else state.messages
        return state.model_copy(update={
            "messages": messages,
            "is_loading": False,
            "error": event.error,
        })

    if isinstance(event, SendCancelled):
        return state.model_copy(update={"is_loading": False})

    if isinstance(event, ErrorCleared):
        return state.model_copy(update={"error": None})

    raise TypeError(f"Unknown session event: {event!r}")
