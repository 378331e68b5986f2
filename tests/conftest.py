"""Pytest configuration and shared fixtures."""

import asyncio
from typing import List, Optional, Sequence

import pytest

from gemchat.domain.models import Message, MessageRole
from gemchat.repositories.memory import InMemoryRepository
from gemchat.services.base import CompletionClient
from gemchat.services.orchestrator import ConversationOrchestrator


class FakeCompletionClient(CompletionClient):
    """Records every history it receives and answers with a canned reply."""

    def __init__(self, reply: str = "Hello!", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[List[Message]] = []
        self.gate: Optional[asyncio.Event] = None

    def hold(self) -> asyncio.Event:
        """Block replies until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    async def send_message(self, history: Sequence[Message]) -> str:
        self.calls.append(list(history))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def client():
    return FakeCompletionClient()


@pytest.fixture
def orchestrator(repository, client):
    return ConversationOrchestrator(repository, client)


@pytest.fixture
def make_history():
    """Build ``n`` alternating user/assistant messages, oldest first."""

    def _make(n: int) -> List[Message]:
        return [
            Message(
                content=f"{'question' if i % 2 == 0 else 'answer'} {i}",
                role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
            )
            for i in range(n)
        ]

    return _make
