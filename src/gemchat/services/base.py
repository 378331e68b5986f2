"""Remote completion client interface."""

from abc import ABC, abstractmethod
from typing import Sequence

from ..domain.exceptions import ValidationError
from ..domain.models import Message, MessageRole


class CompletionClient(ABC):
    """Chat-style remote model.

    ``send_message`` takes the ordered history (oldest first, last turn from
    the user) and returns the assistant's reply text. Failures are raised as
    ``ChatError`` subclasses.
    """

    @abstractmethod
    async def send_message(self, history: Sequence[Message]) -> str:
        """Return the assistant reply to ``history``."""


def validate_history(history: Sequence[Message]) -> None:
    """Raise ``ValidationError`` unless the history ends with a user turn."""
    if not history:
        raise ValidationError("No messages to send")
    if history[-1].role != MessageRole.USER:
        raise ValidationError("The last message must come from the user")
