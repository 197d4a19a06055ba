# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. A Settings
instance is built once at process start and handed to every component
constructor; nothing reads the environment after that.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is missing or internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # === REMOTE GENERATION ===
    anthropic_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "anthropic_api_key", "ANTHROPIC_API_KEY", "claude_api_key", "CLAUDE_API_KEY"
        ),
    )
    llm_model: str = "claude-3-haiku-20240307"
    llm_max_tokens: int = 200
    llm_temperature: float = 0.3
    llm_timeout_s: float = 60.0
    prompt_style: Literal["briefing", "question"] = "briefing"

    # === OBJECT STORE ===
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    s3_endpoint_url: str = ""

    # === Batch loop ===
    checkpoint_chunk_size: int = 10
    retry_budget: int = 3
    rate_limit_backoff_s: float = 10.0
    retry_delay_s: float = 5.0
    inter_item_delay_s: float = 3.0
    stats_interval: int = 25

    # === Content limits ===
    max_content_bytes: int = 500_000
    max_text_chars: int = 50_000
    max_input_chars: int = 10_000
    binary_threshold: float = 0.3
    skip_directories: str = ""

    # === Files ===
    reports_dir: Path = Path("./reports")
    catalog_prefix: str = "s3_daily_uploads_"
    catalog_sheet: str = "Uploads"
    checkpoint_path: Path = Path("./reports/progress_summaries.json")
    artifact_format: Literal["xlsx", "csv"] = "xlsx"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "checkpoint_chunk_size",
        "retry_budget",
        "stats_interval",
        "max_content_bytes",
        "max_text_chars",
        "max_input_chars",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator(
        "llm_timeout_s", "rate_limit_backoff_s", "retry_delay_s", "inter_item_delay_s"
    )
    @classmethod
    def validate_non_negative(cls, v: float, info) -> float:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not 0.0 < self.binary_threshold < 1.0:
            errors.append("BINARY_THRESHOLD must be between 0 and 1 (exclusive)")

        if self.max_input_chars > self.max_text_chars:
            errors.append("MAX_INPUT_CHARS must be <= MAX_TEXT_CHARS")

        if self.llm_timeout_s == 0:
            errors.append("LLM_TIMEOUT_S must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def skip_directories_list(self) -> list[str]:
        """Parse comma-separated directory fragments excluded from generation."""
        return [d.strip() for d in self.skip_directories.split(",") if d.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]


def require_credentials(settings: Settings) -> None:
    """Fail before any work starts when the remote-service key is missing."""
    if not settings.anthropic_api_key.strip():
        raise ConfigurationError(
            "ANTHROPIC_API_KEY (or CLAUDE_API_KEY) must be set to run a batch"
        )
