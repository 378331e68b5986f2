"""Application settings loaded from the environment and an optional .env file."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Every field can be set through ``GEMCHAT_<FIELD>``; the API key is also
    read from the plain ``GEMINI_API_KEY`` variable. An empty key is allowed at
    startup and reported as an ``AuthError`` on the first remote call.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMCHAT_",
        env_file=".env",
        extra="ignore",
        protected_namespaces=(),
    )

    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GEMCHAT_GEMINI_API_KEY"),
    )
    model_name: str = "gemini-2.5-flash"
    request_timeout: float = Field(default=60.0, gt=0)

    storage_backend: Literal["memory", "sqlite"] = "memory"
    database_path: Path = Path("gemchat.db")

    log_level: str = "INFO"
    log_json: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
