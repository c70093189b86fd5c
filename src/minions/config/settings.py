"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "minions"
    log_level: str = "INFO"
    database_url: str = ""
    executor_mode: str = "deterministic"
    agent_timeout_s: float = Field(default=300.0, gt=0.0)
    max_context_entries: int = Field(default=20, ge=1)
    max_context_value_chars: int = Field(default=2000, ge=1)
    max_parallel_tasks: int = Field(default=0, ge=0)
    llm_model: str = "claude-sonnet-4-20250514"
    llm_base_url: str = "https://api.anthropic.com/v1"
    llm_max_tokens: int = Field(default=4096, ge=1)
    anthropic_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="MINIONS_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_anthropic_api_key(self) -> str:
        return self.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
