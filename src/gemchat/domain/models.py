"""Domain models for the chat application."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class MessageRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """A single turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    content: str
    role: MessageRole = MessageRole.USER
    timestamp: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """Conversation metadata; its messages live in the store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    title: Optional[str] = None


class SendResult(BaseModel):
    """Outcome of one successful send."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    assistant_message: Message
    should_update_title: bool
