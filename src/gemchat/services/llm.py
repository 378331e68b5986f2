"""Gemini completion client."""

import asyncio
from typing import Any, Optional, Sequence, Tuple

import google.generativeai as genai
import structlog
from google.api_core import exceptions

from ..domain.exceptions import (
    AuthError,
    ChatError,
    NetworkError,
    QuotaError,
    RemoteError,
)
from ..domain.models import Message, MessageRole
from .base import CompletionClient, validate_history

logger = structlog.get_logger()

DEFAULT_MODEL = "gemini-2.5-flash"

_GEMINI_ROLES = {
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "model",
    # Gemini chat history has no system role; summaries go in as user context
    MessageRole.SYSTEM: "user",
}

HistoryKey = Tuple[Tuple[str, str], ...]


def _history_key(messages: Sequence[Message]) -> HistoryKey:
    return tuple((_GEMINI_ROLES[m.role], m.content) for m in messages)


def classify_error(error: BaseException) -> ChatError:
    """Map a transport or SDK failure to a ``ChatError`` kind.

    Structured exception types are checked first; the substring checks on the
    message text are a fallback for errors the SDK does not type.
    """
    if isinstance(error, ChatError):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return NetworkError("The model did not answer in time. Check your connection.")
    if isinstance(error, (exceptions.Unauthenticated, exceptions.PermissionDenied)):
        return AuthError("Invalid or unauthorized API key. Check GEMINI_API_KEY.")
    if isinstance(error, (exceptions.ResourceExhausted, exceptions.TooManyRequests)):
        return QuotaError("Request limit exceeded. Try again later.")
    if isinstance(error, (exceptions.ServiceUnavailable, exceptions.DeadlineExceeded, OSError)):
        return NetworkError(f"Network error: {error}. Check your internet connection.")

    text = str(error)
    lowered = text.lower()
    if "api_key" in lowered or "api key" in lowered:
        return AuthError("Invalid or unauthorized API key. Check GEMINI_API_KEY.")
    if "quota" in lowered or "limit" in lowered:
        return QuotaError("Request limit exceeded. Try again later.")
    return RemoteError(f"Error: {text or 'unknown error'}")


class GeminiClient(CompletionClient):
    """Completion client backed by a Gemini chat session.

    The last chat session is kept together with the history it has seen. A
    call whose prior turns match that history continues the session and only
    sends the new user turn; any other call starts a fresh session seeded
    with the prior turns.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_MODEL,
        request_timeout: Optional[float] = 60.0,
        model: Any = None,
    ) -> None:
        self._api_key = api_key or ""
        self._model_name = model_name
        self._request_timeout = request_timeout
        self._model = model
        self._session: Optional[Tuple[Any, HistoryKey]] = None
        logger.info(
            "llm_client_init",
            model=model_name,
            has_api_key=bool(self._api_key.strip()),
            timeout=request_timeout
        )

    def _get_model(self) -> Any:
        if not self._api_key.strip():
            raise AuthError("API key is empty. Set GEMINI_API_KEY.", code="MISSING_API_KEY")
        if self._model is None:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self._model_name)
        return self._model

    def _take_session(self, prior: Sequence[Message]) -> Tuple[Any, HistoryKey]:
        key = _history_key(prior)
        cached, self._session = self._session, None
        if cached is not None and cached[1] == key:
            logger.debug("chat_session_reused", turns=len(key))
            return cached[0], key

        history = [
            {"role": role, "parts": [content]}
            for role, content in key
        ]
        chat = self._get_model().start_chat(history=history)
        logger.debug("chat_session_started", turns=len(history))
        return chat, key

    async def send_message(self, history: Sequence[Message]) -> str:
        validate_history(history)
        last = history[-1]

        try:
            chat, key = self._take_session(history[:-1])
            response = await asyncio.wait_for(
                chat.send_message_async(last.content),
                timeout=self._request_timeout
            )
            try:
                text = response.text
            except ValueError as e:
                raise RemoteError("The model returned no text") from e
            if not text:
                raise RemoteError("The model returned no text")
        except Exception as e:
            error = classify_error(e)
            logger.error(
                "llm_request_failed",
                error_code=error.code,
                error=str(e),
                turns=len(history)
            )
            if error is e:
                raise
            raise error from e

        self._session = (chat, key + ((_GEMINI_ROLES[last.role], last.content), ("model", text)))
        logger.info("llm_response_received", turns=len(history), response_length=len(text))
        return text
