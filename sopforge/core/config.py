"""Application configuration."""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Locate the ``.env`` file.

    ``SOPFORGE_ENV_FILE`` wins when set; otherwise the working directory and
    the directories above this package are searched, nearest first.
    """
    override = os.getenv("SOPFORGE_ENV_FILE")
    if override:
        return Path(override)

    package_dir = Path(__file__).resolve().parent.parent
    for directory in (Path.cwd(), package_dir, package_dir.parent):
        candidate = directory / ".env"
        if candidate.is_file():
            LOGGER.info(f"Loading environment from {candidate}")
            return candidate

    LOGGER.debug("No .env file found; using process environment only")
    return None


ENV_FILE = find_env_file()


class DatabaseSettings(BaseSettings):
    """Artifact store connection settings."""
    url: str = Field(default="sqlite+aiosqlite:///./sopforge.db", validation_alias="DATABASE_URL")
    pool_size: int = Field(default=10, validation_alias="DATABASE_POOL_SIZE")
    max_overflow: int = Field(default=20, validation_alias="DATABASE_MAX_OVERFLOW")
    echo: bool = Field(default=False, validation_alias="DATABASE_ECHO")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )


class LLMSettings(BaseSettings):
    """Text-generation service settings."""

    provider: str = Field(default="none", validation_alias="LLM_PROVIDER")
    api_key: str = Field(default="", validation_alias="LLM_API_KEY")
    api_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="LLM_API_URL")
    model: str = Field(default="openai/gpt-4o-mini", validation_alias="LLM_MODEL")
    temperature: float = Field(default=0.4, validation_alias="LLM_TEMPERATURE")
    max_tokens: int = Field(default=4000, validation_alias="LLM_MAX_TOKENS")
    timeout_seconds: int = Field(default=90, validation_alias="LLM_TIMEOUT_SECONDS")
    # One attempt: retry policy belongs to the caller
    max_retries: int = Field(default=1, validation_alias="LLM_MAX_RETRIES")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )

    def model_post_init(self, __context) -> None:
        """Log settings after initialization."""
        LOGGER.info(f"LLM Provider: {self.provider}")
        if self.provider != "none":
            LOGGER.info(f"LLM API Key present: {bool(self.api_key)}")


class PipelineSettings(BaseSettings):
    """Transformation pipeline behaviour."""

    # None analyses every step; an integer enables prefix sampling
    audit_max_steps: Optional[int] = Field(default=None, validation_alias="AUDIT_MAX_STEPS")
    stage_timeout_seconds: Optional[float] = Field(default=None, validation_alias="STAGE_TIMEOUT_SECONDS")
    prompt_workers: int = Field(default=4, validation_alias="PROMPT_WORKERS")
    prompt_author: str = Field(default="Prompt Composer", validation_alias="PROMPT_AUTHOR")
    prompt_version: str = Field(default="1.0", validation_alias="PROMPT_VERSION")
    review_pass_threshold: int = Field(default=85, validation_alias="REVIEW_PASS_THRESHOLD")
    review_revision_threshold: int = Field(default=70, validation_alias="REVIEW_REVISION_THRESHOLD")
    working_days_per_month: int = Field(default=21, validation_alias="WORKING_DAYS_PER_MONTH")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )


class Settings(BaseSettings):
    """Unified application settings with nested models."""

    app_name: str = Field(default="SOPForge", validation_alias="APP_NAME")
    app_version: str = "0.1.0"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    db: DatabaseSettings = Field(default_factory=lambda: DatabaseSettings())
    llm: LLMSettings = Field(default_factory=lambda: LLMSettings())
    pipeline: PipelineSettings = Field(default_factory=lambda: PipelineSettings())

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        return self.db.url

    @property
    def llm_provider(self) -> str:
        return self.llm.provider

    @property
    def audit_max_steps(self) -> Optional[int]:
        return self.pipeline.audit_max_steps

    @property
    def stage_timeout_seconds(self) -> Optional[float]:
        return self.pipeline.stage_timeout_seconds


settings = Settings()

LOGGER.info(f"Settings initialized with environment: {settings.environment}")
