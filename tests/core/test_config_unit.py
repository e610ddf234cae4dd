"""Tests for application settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


def build(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


def test_defaults():
    settings = build()

    assert settings.AI_PROVIDER == ""
    assert settings.AI_MAX_TOKENS == 1500
    assert settings.AI_TEMPERATURE == 0.7
    assert settings.AI_STREAM_TIMEOUT_SECONDS == 120.0
    assert settings.DEBUG_AI_LOG is False
    assert settings.LOG_REJECTED_PROMPTS is False


def test_provider_is_normalized():
    assert build(AI_PROVIDER="  OpenRouter ").AI_PROVIDER == "openrouter"


def test_provider_read_from_environment(monkeypatch):
    monkeypatch.setenv("AI_PROVIDER", "ANTHROPIC")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")  # pragma: allowlist secret
    monkeypatch.setenv("DEBUG_AI_LOG", "true")

    settings = build()

    assert settings.AI_PROVIDER == "anthropic"
    assert settings.ANTHROPIC_API_KEY == "from-env"
    assert settings.DEBUG_AI_LOG is True


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("https://a.test, https://b.test", ["https://a.test", "https://b.test"]),
        ('["https://a.test"]', ["https://a.test"]),
        ("", []),
    ],
)
def test_cors_origins_parsing(raw, expected):
    assert build(CORS_ORIGINS=raw).CORS_ORIGINS == expected


def test_wildcard_origin_rejected_with_credentials():
    with pytest.raises(ValidationError):
        build(CORS_ORIGINS="*", ALLOW_CREDENTIALS=True)


def test_settings_are_frozen():
    with pytest.raises(ValidationError):
        build().AI_PROVIDER = "openai"  # type: ignore[misc]


def test_get_settings_rejects_unknown_environment(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("ENVIRONMENT", "staging")
    try:
        with pytest.raises(ValueError, match="ENVIRONMENT"):
            get_settings()
    finally:
        monkeypatch.setenv("ENVIRONMENT", "test")
        get_settings.cache_clear()
