"""Factory for creating repository backends."""

from typing import Any

from .base import ConversationRepository


def create_repository(
    backend: str = "memory",
    **kwargs: Any
) -> ConversationRepository:
    """Create a repository backend.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **kwargs: Backend-specific configuration

    Returns:
        ConversationRepository instance (not yet connected)

    Raises:
        ValueError: If backend type is not supported
    """
    if backend == "memory":
        from .memory import InMemoryRepository
        return InMemoryRepository(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteRepository
        return SQLiteRepository(**kwargs)

    raise ValueError(
        f"Unsupported repository backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )
