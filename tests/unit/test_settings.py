"""Unit tests for dispatcher settings."""

import logging

import pytest
from pydantic import ValidationError

from netdispatch.settings import DispatchSettings, get_settings


class TestDispatchSettings:
    """Tests for DispatchSettings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Defaults apply when the environment is empty."""
        for name in ("BASE_URL", "USER_AGENT", "DEFAULT_RETRY_DELAY_MS", "LOG_LEVEL"):
            monkeypatch.delenv(f"NETDISPATCH_{name}", raising=False)

        settings = DispatchSettings(_env_file=None)

        assert settings.base_url == ""
        assert settings.user_agent == "netdispatch/0.1"
        assert settings.default_retry_delay_ms == 1000
        assert settings.follow_redirects is True
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Prefixed environment variables override defaults."""
        monkeypatch.setenv("NETDISPATCH_BASE_URL", "https://api.example.com")
        monkeypatch.setenv("NETDISPATCH_DEFAULT_RETRY_DELAY_MS", "250")
        monkeypatch.setenv("NETDISPATCH_LOG_LEVEL", "debug")

        settings = get_settings()

        assert settings.base_url == "https://api.example.com"
        assert settings.default_retry_delay_ms == 250
        assert settings.log_level == "DEBUG"
        assert settings.log_level_number == logging.DEBUG

    def test_rejects_unknown_log_level(self) -> None:
        """Unknown log levels fail validation."""
        with pytest.raises(ValidationError):
            DispatchSettings(log_level="chatty", _env_file=None)
