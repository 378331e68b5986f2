"""Error kinds surfaced by the store, the remote client and the orchestrator.

Everything raised across module boundaries derives from ``ChatError`` so the
session layer and the HTTP layer can catch one type and show ``message``.
"""

from typing import Optional


class ChatError(Exception):
    """Base error.

    Attributes:
        code: machine readable code, e.g. ``"NETWORK_ERROR"``.
        message: human readable text shown to the user.
    """

    default_code = "CHAT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class NetworkError(ChatError):
    """Transport failure or timeout talking to the remote model."""

    default_code = "NETWORK_ERROR"


class AuthError(ChatError):
    """Missing or rejected credential."""

    default_code = "AUTH_ERROR"


class QuotaError(ChatError):
    """Rate or quota limit exceeded."""

    default_code = "QUOTA_ERROR"


class ValidationError(ChatError):
    """A precondition was violated."""

    default_code = "VALIDATION_ERROR"


class StorageError(ChatError):
    """Persistence failure."""

    default_code = "STORAGE_ERROR"


class RemoteError(ChatError):
    """Any other failure reported by the remote model."""

    default_code = "REMOTE_ERROR"
