"""Tests for environment settings."""

import pytest
from pydantic import ValidationError

from support_chat.config.settings import Settings


def _settings(**env) -> Settings:
    return Settings(_env_file=None, DATABASE_URL="sqlite://", **env)


def test_defaults() -> None:
    settings = _settings()

    assert settings.llm_provider == "openai"
    assert settings.max_message_length == 5000
    assert settings.rate_limit_ip_per_minute == 20
    assert settings.rate_limit_session_per_minute == 5
    assert not settings.is_production


def test_invalid_log_level_falls_back_to_info() -> None:
    assert _settings(LOG_LEVEL="verbose").log_level == "INFO"
    assert _settings(LOG_LEVEL="debug").log_level == "DEBUG"


def test_provider_is_normalized_and_validated() -> None:
    assert _settings(LLM_PROVIDER=" Google ").llm_provider == "google"
    with pytest.raises(ValidationError):
        _settings(LLM_PROVIDER="local")


def test_limits_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        _settings(MAX_MESSAGE_LENGTH=0)


def test_production_flag() -> None:
    assert _settings(ENVIRONMENT="Production").is_production
