"""Unit tests for configuration module."""

import pytest

from inbox_digest.config import Settings, get_settings
from inbox_digest.models import SuggestedAction, Urgency


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings(_env_file=None)

        assert settings.ollama_host == "http://localhost:11434"
        assert settings.gmail_inbox_query == "in:inbox"
        assert settings.digest_max_items == 10
        assert settings.default_urgency is Urgency.LOW
        assert settings.default_action is SuggestedAction.READ_LATER
        assert settings.log_level == "INFO"
        assert settings.debug is False
        assert "https://www.googleapis.com/auth/gmail.modify" in settings.gmail_scopes

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("INBOX_DIGEST_OLLAMA_HOST", "http://custom:8080")
        monkeypatch.setenv("INBOX_DIGEST_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("INBOX_DIGEST_DEBUG", "true")
        monkeypatch.setenv("INBOX_DIGEST_DEFAULT_ACTION", "Follow Up")
        monkeypatch.setenv("INBOX_DIGEST_SUMMARIZE_CONCURRENCY", "8")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.ollama_host == "http://custom:8080"
        assert settings.log_level == "DEBUG"
        assert settings.debug is True
        assert settings.default_action is SuggestedAction.FOLLOW_UP
        assert settings.summarize_concurrency == 8

        # Clean up
        get_settings.cache_clear()

    def test_summarize_concurrency_must_be_positive(self) -> None:
        with pytest.raises(Exception):  # Pydantic ValidationError
            Settings(summarize_concurrency=0, _env_file=None)

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
