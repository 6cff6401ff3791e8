from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import config_constants


def _is_test_environment() -> bool:
    """Check if we're running in a test environment."""
    import sys

    if "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ:
        return True
    if os.environ.get("TESTING", "").lower() in ("1", "true", "yes"):
        return True
    return False


# Tests build Config objects explicitly and never rely on a .env file
if not _is_test_environment():
    try:
        load_dotenv(override=False)
    except (PermissionError, OSError):
        pass

DEFAULT_LOG_LEVEL = config_constants.DEFAULT_LOG_LEVEL
DEFAULT_TIMEOUT_SECONDS = config_constants.DEFAULT_TIMEOUT_SECONDS
DEFAULT_USER_AGENT = config_constants.DEFAULT_USER_AGENT
VALID_LOG_LEVELS = config_constants.VALID_LOG_LEVELS
SUMMARY_WORD_TARGETS = config_constants.SUMMARY_WORD_TARGETS
MODEL_COST_PER_1K_TOKENS = config_constants.MODEL_COST_PER_1K_TOKENS

# Fields that ``QueueProcessor.update_config`` accepts
UPDATABLE_FIELDS = (
    "daily_limit",
    "per_job_limit",
    "max_concurrent_jobs",
    "max_retries",
    "polling_interval",
)


class Config(BaseModel):
    """Configuration model for the episode generation queue.

    The configuration is organized into several categories:

    - **Scheduler**: concurrency, polling cadence, retries and timeouts
    - **Cost**: daily and per-job spend ceilings
    - **Summarization**: language-model selection, pricing and quality gate
    - **TTS**: speech synthesis model, voice and pricing
    - **Storage**: where finished audio is published
    - **Logging**: log level, log file and event stream

    The model is immutable (frozen) after creation. Use ``model_copy(update=...)``
    to derive a changed configuration.

    Example:
        >>> from podcast_generator import Config
        >>> cfg = Config(max_concurrent_jobs=2, daily_limit=20.0, per_job_limit=2.0)

    Example:
        Load configuration from file:

        >>> from podcast_generator import Config, load_config_file
        >>> cfg = Config(**load_config_file("config.yaml"))
    """

    # Scheduler
    max_concurrent_jobs: int = Field(
        default=config_constants.DEFAULT_MAX_CONCURRENT_JOBS,
        ge=config_constants.MIN_CONCURRENT_JOBS,
        le=config_constants.MAX_CONCURRENT_JOBS,
        description="Maximum number of stage executions in flight at once.",
    )
    polling_interval: float = Field(
        default=config_constants.DEFAULT_POLLING_INTERVAL_SECONDS,
        ge=config_constants.MIN_POLLING_INTERVAL_SECONDS,
        le=config_constants.MAX_POLLING_INTERVAL_SECONDS,
        description="Seconds between scheduler ticks.",
    )
    max_retries: int = Field(
        default=config_constants.DEFAULT_MAX_RETRIES,
        ge=0,
        le=config_constants.MAX_RETRIES_LIMIT,
        description="Retries allowed per stage before a job fails permanently.",
    )
    retry_base_delay: float = Field(
        default=config_constants.DEFAULT_RETRY_BASE_DELAY_SECONDS,
        ge=0.0,
        description="Backoff delay in seconds after the first failed attempt.",
    )
    retry_max_delay: float = Field(
        default=config_constants.DEFAULT_RETRY_MAX_DELAY_SECONDS,
        ge=0.0,
        description="Upper bound for computed backoff delays.",
    )
    stage_timeout: Optional[int] = Field(
        default=config_constants.DEFAULT_STAGE_TIMEOUT_SECONDS,
        description="Seconds a single stage execution may run (None or 0 disables).",
    )
    auto_start: bool = Field(default=False, description="Start polling on construction.")

    # Cost
    daily_limit: float = Field(
        default=config_constants.DEFAULT_DAILY_LIMIT,
        ge=0.0,
        le=config_constants.MAX_DAILY_LIMIT,
        description="Maximum USD spend per calendar day.",
    )
    per_job_limit: float = Field(
        default=config_constants.DEFAULT_PER_JOB_LIMIT,
        ge=0.0,
        le=config_constants.MAX_PER_JOB_LIMIT,
        description="Maximum USD spend for a single queue item.",
    )
    cost_reset_hour_utc: int = Field(
        default=config_constants.DEFAULT_COST_RESET_HOUR_UTC,
        ge=0,
        le=23,
        description="UTC hour at which the daily spend bucket resets.",
    )

    # Summarization
    summary_provider: Literal["openai"] = Field(default=config_constants.DEFAULT_SUMMARY_PROVIDER)
    summary_model: str = Field(default=config_constants.DEFAULT_SUMMARY_MODEL)
    summary_max_tokens: int = Field(default=config_constants.DEFAULT_SUMMARY_MAX_TOKENS, gt=0)
    summary_temperature: float = Field(default=config_constants.DEFAULT_SUMMARY_TEMPERATURE)
    max_content_length: int = Field(default=config_constants.MAX_CONTENT_LENGTH, gt=0)
    cost_per_1k_tokens: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Summarization price per 1k tokens. Derived from summary_model if unset.",
    )
    min_coherence: float = Field(default=config_constants.DEFAULT_MIN_COHERENCE, ge=0.0, le=1.0)
    min_relevance: float = Field(default=config_constants.DEFAULT_MIN_RELEVANCE, ge=0.0, le=1.0)
    min_readability: float = Field(
        default=config_constants.DEFAULT_MIN_READABILITY, ge=0.0, le=1.0
    )
    words_per_minute: int = Field(default=config_constants.DEFAULT_WORDS_PER_MINUTE, gt=0)

    # TTS
    tts_provider: Literal["openai"] = Field(default=config_constants.DEFAULT_TTS_PROVIDER)
    tts_model: str = Field(default=config_constants.DEFAULT_TTS_MODEL)
    tts_voice: str = Field(default=config_constants.DEFAULT_TTS_VOICE)
    tts_speed: float = Field(default=config_constants.DEFAULT_TTS_SPEED, ge=0.25, le=4.0)
    tts_format: str = Field(default=config_constants.DEFAULT_TTS_FORMAT)
    tts_cost_per_1k_chars: float = Field(
        default=config_constants.TTS_COST_PER_1K_CHARS["openai"], ge=0.0
    )

    # Storage
    storage_provider: Literal["local"] = Field(default=config_constants.DEFAULT_STORAGE_PROVIDER)
    storage_dir: str = Field(default=config_constants.DEFAULT_STORAGE_DIR)
    storage_base_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix for stored files. file:// URLs are returned if unset.",
    )
    upload_cost_per_mb: float = Field(default=config_constants.DEFAULT_UPLOAD_COST_PER_MB, ge=0.0)

    # Scrape
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    request_timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS)
    scrape_cost: float = Field(default=config_constants.DEFAULT_SCRAPE_COST, ge=0.0)

    # Logging
    log_level: str = Field(default=DEFAULT_LOG_LEVEL)
    log_file: Optional[str] = Field(default=None)
    event_log_size: int = Field(default=config_constants.DEFAULT_EVENT_LOG_SIZE, gt=0)
    events_jsonl_path: Optional[str] = Field(default=None)

    # Provider credentials
    openai_api_key: Optional[str] = Field(default=None, validate_default=True)
    openai_api_base: Optional[str] = Field(default=None, validate_default=True)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    @property
    def summary_cost_per_1k_tokens(self) -> float:
        """Price used for summarization cost, explicit setting first."""
        if self.cost_per_1k_tokens is not None:
            return self.cost_per_1k_tokens
        return MODEL_COST_PER_1K_TOKENS.get(self.summary_model, 0.0)

    @field_validator("stage_timeout", mode="before")
    @classmethod
    def _coerce_stage_timeout(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("stage_timeout must be an integer") from exc
        return parsed if parsed > 0 else None

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _ensure_request_timeout(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_TIMEOUT_SECONDS
        try:
            timeout = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("request_timeout must be an integer") from exc
        return max(1, timeout)

    @field_validator("summary_temperature", mode="before")
    @classmethod
    def _validate_summary_temperature(cls, value: Any) -> float:
        """Validate temperature is in valid range (0.0-2.0)."""
        if value is None or value == "":
            return config_constants.DEFAULT_SUMMARY_TEMPERATURE
        try:
            temp = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("summary_temperature must be a number") from exc
        if temp < 0.0 or temp > 2.0:
            raise ValueError("summary_temperature must be between 0.0 and 2.0")
        return temp

    @field_validator("tts_format", mode="after")
    @classmethod
    def _validate_tts_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in config_constants.VALID_TTS_FORMATS:
            raise ValueError(
                f"tts_format must be one of {config_constants.VALID_TTS_FORMATS}, got: {value}"
            )
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        """Normalize log level value."""
        if value is None:
            return DEFAULT_LOG_LEVEL
        return str(value).strip().upper() or DEFAULT_LOG_LEVEL

    @field_validator("log_level", mode="after")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        """Validate log level is one of the valid levels."""
        if value not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got: {value}")
        return value

    @field_validator("log_file", "events_jsonl_path", "storage_base_url", mode="before")
    @classmethod
    def _strip_optional_str(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def _load_openai_api_key_from_env(cls, value: Any) -> Optional[str]:
        """Load OpenAI API key from environment variable if not provided."""
        if value is not None:
            return str(value).strip() or None
        env_key = os.getenv("OPENAI_API_KEY")
        if env_key:
            return env_key.strip() or None
        return None

    @field_validator("openai_api_base", mode="before")
    @classmethod
    def _load_openai_api_base_from_env(cls, value: Any) -> Optional[str]:
        """Load OpenAI API base URL from environment variable if not provided."""
        if value is not None:
            return str(value).strip() or None
        env_base = os.getenv("OPENAI_API_BASE")
        if env_base:
            return env_base.strip() or None
        return None

    @model_validator(mode="after")
    def _validate_cross_field_settings(self) -> "Config":
        """Validate settings that depend on each other."""
        # A single job may never be allowed to spend more than a whole day
        if self.per_job_limit > self.daily_limit:
            raise ValueError(
                f"per_job_limit ({self.per_job_limit}) must not exceed "
                f"daily_limit ({self.daily_limit})"
            )

        if self.retry_base_delay > self.retry_max_delay:
            raise ValueError(
                f"retry_base_delay ({self.retry_base_delay}) must not exceed "
                f"retry_max_delay ({self.retry_max_delay})"
            )

        return self


def load_config_file(path: str) -> Dict[str, Any]:
    """Load configuration from a JSON or YAML file.

    The file format is auto-detected from the file extension (``.json``,
    ``.yaml`` or ``.yml``). The returned dictionary can be unpacked into the
    ``Config`` constructor. Keys that are not ``Config`` fields (such as the
    service-mode ``episodes`` list) are left for the caller to pop first.

    Args:
        path: Path to configuration file. Supports tilde expansion.

    Returns:
        Dictionary containing configuration values from the file.

    Raises:
        ValueError: If the path is empty, missing, unreadable, of an unsupported
            type, or does not contain a mapping at the top level.
    """
    if not path:
        raise ValueError("Config path cannot be empty")

    cfg_path = Path(path).expanduser()
    try:
        resolved = cfg_path.resolve()
    except (OSError, RuntimeError) as exc:
        raise ValueError(f"Invalid config path: {path} ({exc})") from exc

    if not resolved.exists():
        raise ValueError(f"Config file not found: {resolved}")

    suffix = resolved.suffix.lower()
    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read config file {resolved}: {exc}") from exc

    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON config file {resolved}: {exc}") from exc
    elif suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:  # type: ignore[attr-defined]
            raise ValueError(f"Invalid YAML config file {resolved}: {exc}") from exc
    else:
        raise ValueError(f"Unsupported config file type: {resolved.suffix}")

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping/object at the top level")

    return data
