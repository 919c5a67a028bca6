"""Tests for environment configuration."""

import pytest

from codedrop.config import InvalidConfig, Settings, get_settings

ENV_NAMES = [
    "CODE_LENGTH", "EXPIRY_MINUTES", "MAX_TEXT_LENGTH", "MAX_ATTEMPTS",
    "COOLDOWN_SECONDS", "STALE_IDENTITY_SECONDS", "MAX_FILES", "MAX_PAYLOAD_BYTES",
    "SWEEP_INTERVAL_SECONDS", "DATABASE_PATH", "DEBUG", "PRODUCTION_DOMAIN",
    "RATE_LIMIT_ENABLED",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = get_settings()
    assert settings == Settings()
    assert settings.code_length == 6
    assert settings.ttl_seconds == 300
    assert settings.max_text_length == 50_000
    assert settings.max_attempts == 5
    assert settings.cooldown_seconds == 30


def test_overrides(clean_env):
    clean_env.setenv("EXPIRY_MINUTES", "10")
    clean_env.setenv("MAX_ATTEMPTS", "3")
    clean_env.setenv("DEBUG", "true")
    clean_env.setenv("DATABASE_PATH", ":memory:")
    settings = get_settings()
    assert settings.ttl_seconds == 600
    assert settings.max_attempts == 3
    assert settings.debug is True
    assert settings.database_path == ":memory:"


@pytest.mark.parametrize("name, value", [
    ("MAX_ATTEMPTS", "five"),
    ("COOLDOWN_SECONDS", "0"),
    ("CODE_LENGTH", "3"),
    ("CODE_LENGTH", "13"),
])
def test_invalid_values(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(InvalidConfig):
        get_settings()
