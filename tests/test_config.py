"""Test suite for settings and logging setup."""

from pathlib import Path

import structlog

from gemchat.config.log import configure_logging
from gemchat.config.settings import Settings


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    monkeypatch.setenv("GEMCHAT_STORAGE_BACKEND", "sqlite")
    monkeypatch.setenv("GEMCHAT_DATABASE_PATH", "/tmp/chat.db")
    monkeypatch.setenv("GEMCHAT_REQUEST_TIMEOUT", "12.5")

    settings = Settings(_env_file=None)

    assert settings.gemini_api_key == "secret"
    assert settings.storage_backend == "sqlite"
    assert settings.database_path == Path("/tmp/chat.db")
    assert settings.request_timeout == 12.5


def test_missing_api_key_is_allowed(monkeypatch):
    """Test that startup does not require the key."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GEMCHAT_GEMINI_API_KEY", raising=False)

    settings = Settings(_env_file=None)

    assert settings.gemini_api_key == ""
    assert settings.model_name == "gemini-2.5-flash"


def test_configure_logging_json(capsys):
    configure_logging(Settings(_env_file=None, log_json=True, log_level="debug"))
    structlog.get_logger().info("configured", component="test")

    assert '"event": "configured"' in capsys.readouterr().out
    structlog.reset_defaults()
