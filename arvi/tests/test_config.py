import logging

import pytest

from arvi.core.config import Settings, validate_config
from arvi.core.validation import EnvValidationError, environment_problems, validate_env


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("DATABASE_URL", "TEST_DATABASE_URL", "GROQ_API_KEY", "OPENAI_API_KEY", "AI_PASS_MAX_ATTEMPTS"):
        monkeypatch.delenv(key, raising=False)


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def enforce_validation(monkeypatch):
    monkeypatch.delenv("SKIP_ENV_VALIDATION", raising=False)


def test_skip_flag_bypasses_validation(monkeypatch):
    monkeypatch.setenv("SKIP_ENV_VALIDATION", "1")
    assert validate_env(env="production", settings_obj=_settings()) is True


def test_production_requires_database_and_vendor_keys(enforce_validation):
    with pytest.raises(EnvValidationError, match="DATABASE_URL"):
        validate_env(env="production", settings_obj=_settings())


def test_production_rejects_sqlite(enforce_validation):
    cfg = _settings(DATABASE_URL="sqlite:///arvi.db", GROQ_API_KEY="g", OPENAI_API_KEY="o")
    with pytest.raises(EnvValidationError, match="SQLite"):
        validate_env(env="production", settings_obj=cfg)


def test_production_with_postgres_passes(enforce_validation):
    cfg = _settings(DATABASE_URL="postgresql://arvi:pw@db:5432/arvi", GROQ_API_KEY="g", OPENAI_API_KEY="o")
    assert validate_env(env="production", settings_obj=cfg) is True


def test_test_database_only_in_test_mode(enforce_validation):
    cfg = _settings(TEST_DATABASE_URL="sqlite:///t.db")
    with pytest.raises(EnvValidationError, match="TEST_DATABASE_URL"):
        validate_env(env="development", settings_obj=cfg)
    assert validate_env(env="test", settings_obj=cfg) is True


def test_malformed_database_url(enforce_validation):
    with pytest.raises(EnvValidationError):
        validate_env(env="development", settings_obj=_settings(DATABASE_URL="not a url"))


def test_attempts_must_be_positive(enforce_validation):
    with pytest.raises(EnvValidationError, match="AI_PASS_MAX_ATTEMPTS"):
        validate_env(env="development", settings_obj=_settings(AI_PASS_MAX_ATTEMPTS=0))


def test_validate_config_warns_or_raises(caplog):
    cfg = _settings()
    with caplog.at_level(logging.WARNING, logger="arvi"):
        assert validate_config(strict=False, settings_obj=cfg) is True
    assert "GROQ_API_KEY" in caplog.text

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        validate_config(strict=True, settings_obj=cfg)


def test_all_production_problems_are_listed():
    problems = environment_problems("production", _settings(TEST_DATABASE_URL="sqlite:///t.db"))

    assert problems == [
        "DATABASE_URL is required in production",
        "GROQ_API_KEY is required in production",
        "OPENAI_API_KEY is required in production",
        "TEST_DATABASE_URL must not be set in production",
    ]


def test_allowed_origins_are_split_and_trimmed():
    cfg = _settings(ALLOWED_ORIGINS=" https://app.arvi.io , http://localhost:3000,")
    assert cfg.allowed_origins == ["https://app.arvi.io", "http://localhost:3000"]
