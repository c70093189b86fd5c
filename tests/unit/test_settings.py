import pytest
from pydantic import ValidationError

from minions.config.settings import Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.app_name == "minions"
    assert "app_env" not in Settings.model_fields
    assert settings.agent_timeout_s == 300
    assert settings.max_context_entries == 20
    assert settings.max_context_value_chars == 2000
    assert settings.llm_model == "claude-sonnet-4-20250514"


def test_env_prefix_and_fallbacks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MINIONS_AGENT_TIMEOUT_S", "12.5")
    monkeypatch.delenv("MINIONS_DATABASE_URL", raising=False)
    monkeypatch.delenv("MINIONS_ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/db")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "fallback-key")

    settings = Settings(_env_file=None)

    assert settings.agent_timeout_s == 12.5
    assert settings.resolved_database_url() == "postgresql://fallback/db"
    assert settings.resolved_anthropic_api_key() == "fallback-key"


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, agent_timeout_s=0)
