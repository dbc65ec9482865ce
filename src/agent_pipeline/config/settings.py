"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "agent-pipeline"
    log_level: str = "INFO"
    default_execution_mode: str = "agent-assisted"
    assisted_failure_policy: str = "lenient"
    max_graph_steps: int = Field(default=50, ge=1)
    tool_timeout_s: float = Field(default=30.0, ge=0.01)
    tool_max_retries: int = Field(default=0, ge=0)
    tool_retry_backoff_s: float = Field(default=0.0, ge=0.0)
    tool_history_limit: int = Field(default=10_000, ge=1)
    command_timeout_s: float = Field(default=120.0, ge=0.1)
    batch_concurrency: int = Field(default=3, ge=1)
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    openai_api_key: str = ""
    database_url: str = ""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_PIPELINE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
