"""Test suite for the Gemini completion client."""

import asyncio
from types import SimpleNamespace

import pytest
from google.api_core import exceptions

from gemchat.domain.exceptions import (
    AuthError,
    NetworkError,
    QuotaError,
    RemoteError,
    ValidationError,
)
from gemchat.domain.models import Message, MessageRole
from gemchat.services.llm import GeminiClient, classify_error


class FakeChat:
    def __init__(self, model, history):
        self.model = model
        self.history = history
        self.sent = []

    async def send_message_async(self, text):
        self.sent.append(text)
        if self.model.delay:
            await asyncio.sleep(self.model.delay)
        if self.model.error is not None:
            raise self.model.error
        return self.model.response


class FakeModel:
    """Stands in for ``genai.GenerativeModel``."""

    def __init__(self, reply="ok", error=None, delay=0.0):
        self.response = SimpleNamespace(text=reply)
        self.error = error
        self.delay = delay
        self.chats = []

    def start_chat(self, history):
        chat = FakeChat(self, history)
        self.chats.append(chat)
        return chat


def turn(content, role=MessageRole.USER):
    return Message(content=content, role=role)


def make_client(model, api_key="test-key", timeout=5.0):
    return GeminiClient(api_key=api_key, request_timeout=timeout, model=model)


@pytest.mark.asyncio
async def test_rejects_empty_history():
    with pytest.raises(ValidationError):
        await make_client(FakeModel()).send_message([])


@pytest.mark.asyncio
async def test_rejects_history_not_ending_with_user():
    history = [turn("hi"), turn("hello", MessageRole.ASSISTANT)]
    with pytest.raises(ValidationError):
        await make_client(FakeModel()).send_message(history)


@pytest.mark.asyncio
async def test_missing_api_key_fails_on_first_call():
    """Test that an empty key surfaces as an auth error, not at construction."""
    model = FakeModel()
    client = make_client(model, api_key="  ")

    with pytest.raises(AuthError) as excinfo:
        await client.send_message([turn("hi")])

    assert excinfo.value.code == "MISSING_API_KEY"
    assert model.chats == []


@pytest.mark.asyncio
async def test_history_roles_mapped_for_gemini():
    """Test prior turns seed the chat and the last user turn is sent."""
    model = FakeModel(reply="fine")
    history = [
        turn("Resumen", MessageRole.SYSTEM),
        turn("q1"),
        turn("a1", MessageRole.ASSISTANT),
        turn("q2"),
    ]

    reply = await make_client(model).send_message(history)

    assert reply == "fine"
    (chat,) = model.chats
    assert chat.history == [
        {"role": "user", "parts": ["Resumen"]},
        {"role": "user", "parts": ["q1"]},
        {"role": "model", "parts": ["a1"]},
    ]
    assert chat.sent == ["q2"]


@pytest.mark.asyncio
async def test_session_reused_when_history_continues():
    """Test that a follow-up turn continues the same chat session."""
    model = FakeModel(reply="r1")
    client = make_client(model)
    first = turn("q1")
    await client.send_message([first])

    model.response = SimpleNamespace(text="r2")
    reply = await client.send_message([first, turn("r1", MessageRole.ASSISTANT), turn("q2")])

    assert reply == "r2"
    assert len(model.chats) == 1
    assert model.chats[0].sent == ["q1", "q2"]


@pytest.mark.asyncio
async def test_session_rebuilt_for_unrelated_history():
    """Test that another conversation never sees the previous session."""
    model = FakeModel()
    client = make_client(model)
    await client.send_message([turn("conversation one")])

    await client.send_message([turn("conversation two")])

    assert len(model.chats) == 2
    assert model.chats[1].history == []


@pytest.mark.asyncio
async def test_quota_error_mapped_and_chained():
    cause = exceptions.ResourceExhausted("429 quota")
    client = make_client(FakeModel(error=cause))

    with pytest.raises(QuotaError) as excinfo:
        await client.send_message([turn("hi")])

    assert excinfo.value.__cause__ is cause


@pytest.mark.asyncio
async def test_timeout_is_network_error():
    client = make_client(FakeModel(delay=1.0), timeout=0.01)

    with pytest.raises(NetworkError):
        await client.send_message([turn("hi")])


@pytest.mark.asyncio
async def test_failed_call_drops_session():
    """Test that a failure forces a fresh session next time."""
    model = FakeModel(reply="r1")
    client = make_client(model)
    first = turn("q1")
    await client.send_message([first])

    model.error = ConnectionError("reset")
    with pytest.raises(NetworkError):
        await client.send_message([first, turn("r1", MessageRole.ASSISTANT), turn("q2")])

    model.error = None
    await client.send_message([first, turn("r1", MessageRole.ASSISTANT), turn("q2")])
    assert len(model.chats) == 2


@pytest.mark.asyncio
async def test_blocked_response_is_remote_error():
    class Blocked:
        @property
        def text(self):
            raise ValueError("no parts")

    model = FakeModel()
    model.response = Blocked()

    with pytest.raises(RemoteError):
        await make_client(model).send_message([turn("hi")])


@pytest.mark.parametrize(
    "error, kind",
    [
        (exceptions.Unauthenticated("bad key"), AuthError),
        (exceptions.PermissionDenied("denied"), AuthError),
        (exceptions.TooManyRequests("slow"), QuotaError),
        (exceptions.ServiceUnavailable("down"), NetworkError),
        (ConnectionError("refused"), NetworkError),
        (Exception("400 API_KEY_INVALID"), AuthError),
        (Exception("Daily limit reached"), QuotaError),
        (Exception("something odd"), RemoteError),
    ],
)
def test_classify_error(error, kind):
    assert isinstance(classify_error(error), kind)


def test_classify_error_passes_chat_errors_through():
    error = ValidationError("bad")
    assert classify_error(error) is error
