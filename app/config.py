"""
Feedback Funnel Application Configuration
=========================================

PURPOSE:
    Pydantic-Settings based configuration for the feedback ingest API and
    the enrichment worker. Every option can be overridden via environment
    variables (FEEDBACK_FUNNEL_ prefix). The connection-level options also
    accept the bare names used by container platforms (DATABASE_URL,
    REDIS_URL, OPENAI_API_KEY, GITHUB_WEBHOOK_SECRET, PORT).
"""

import logging
from typing import List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DEFAULT_DATABASE_URL = "sqlite:///./data/feedback.db"
_DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _env(name: str) -> AliasChoices:
    """Accept both FEEDBACK_FUNNEL_<NAME> and the bare <NAME>."""
    return AliasChoices(f"FEEDBACK_FUNNEL_{name}", name)


class Settings(BaseSettings):
    app_name: str = "Feedback Funnel"
    app_version: str = "1.0.0"
    debug: bool = False

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = Field(default=8080, validation_alias=_env("PORT"))
    cors_origins: List[str] = ["*"]

    # Record store
    database_url: str = Field(
        default=_DEFAULT_DATABASE_URL, validation_alias=_env("DATABASE_URL")
    )

    # Work queue
    queue_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = Field(default=_DEFAULT_REDIS_URL, validation_alias=_env("REDIS_URL"))
    queue_name: str = "feedback_queue"

    # Enrichment (BYO-Key). Without a key the worker falls back to the
    # neutral/uncategorized default so the pipeline keeps flowing.
    openai_api_key: Optional[str] = Field(
        default=None, validation_alias=_env("OPENAI_API_KEY")
    )
    llm_model: str = "gpt-3.5-turbo"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 256

    # GitHub webhook. Unset means signatures are NOT verified (local only).
    github_webhook_secret: Optional[str] = Field(
        default=None, validation_alias=_env("GITHUB_WEBHOOK_SECRET")
    )

    # Worker
    run_worker_in_process: bool = True
    worker_poll_interval_s: float = 1.0
    queue_error_backoff_s: float = 1.0
    store_call_timeout_s: float = 30.0

    # Orphan reconciliation (0 = disabled)
    reconcile_interval_s: int = 0
    reconcile_older_than_s: int = 300
    reconcile_batch_size: int = 100

    # Logging
    log_dir: str = "logs"
    log_file: str = "feedback_funnel.jsonl"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FEEDBACK_FUNNEL_",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("redis_url")
    @classmethod
    def _normalize_redis_url(cls, value: str) -> str:
        # REDIS_URL is often a bare "host:port" address
        if "://" not in value:
            return f"redis://{value}"
        return value

    @field_validator("openai_api_key", "github_webhook_secret")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def is_ai_enabled(self) -> bool:
        """True when a real enrichment call can be made."""
        return bool(self.openai_api_key)

    def is_webhook_verification_enabled(self) -> bool:
        return bool(self.github_webhook_secret)


settings = Settings()
