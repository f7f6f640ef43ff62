"""
config/settings.py — AlertSleuth Runtime Settings

Structure and defaults come from config.yaml; provider secrets come from the
environment (or a .env file next to the working directory).

  - AgentConfig bounds every loop (iterations, compressions, step executions)
  - LLMConfig validates provider, temperature and retry settings
  - Settings.validate_all() checks cross-field problems and reports all of
    them at once in a ConfigError
  - load_settings() reads the file named by --config, then ALERTSLEUTH_CONFIG,
    then config/config.yaml
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alertsleuth.exceptions import AlertSleuthError


class ConfigError(AlertSleuthError):
    """Configuration is unusable; the message lists every problem found."""


PROVIDERS = ("gemini", "openai")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# provider → environment variable holding its API key
_KEY_ENV = {"gemini": "GEMINI_API_KEY", "openai": "OPENAI_API_KEY"}


# ─────────────────────────────────────────────────────────────────────────────
# Sections
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    max_iterations: int = 32
    step_max_iterations: int = 8
    max_compressions: int = 3
    max_step_executions: int = 32
    compression_ratio: float = 0.7
    environment_info: str = ""

    @field_validator("max_iterations", "step_max_iterations", "max_step_executions")
    @classmethod
    def _positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"agent.{info.field_name} must be >= 1")
        return v

    @field_validator("max_compressions")
    @classmethod
    def _non_negative_compressions(cls, v: int) -> int:
        if v < 0:
            raise ValueError("agent.max_compressions must be >= 0")
        return v

    @field_validator("compression_ratio")
    @classmethod
    def _valid_ratio(cls, v: float) -> float:
        if not (0.0 < v < 1.0):
            raise ValueError("agent.compression_ratio must be strictly between 0.0 and 1.0")
        return v


class LLMRetryConfig(BaseModel):
    """Backoff for connection and rate-limit errors."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    @field_validator("max_attempts")
    @classmethod
    def _positive_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("llm.retry.max_attempts must be >= 1")
        return v


class LLMConfig(BaseModel):
    provider: str = "gemini"
    model: str = "gemini-2.5-flash"
    base_url: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)
    fallback_providers: list[str] = Field(default_factory=list)

    @field_validator("provider")
    @classmethod
    def _supported_provider(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in PROVIDERS:
            raise ValueError(f"llm.provider '{v}' is not supported (choose from {', '.join(PROVIDERS)})")
        return v

    @field_validator("temperature")
    @classmethod
    def _temperature_range(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (0.0 <= v <= 2.0):
            raise ValueError("llm.temperature must lie in [0.0, 2.0]")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _positive_max_tokens(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("llm.max_tokens must be >= 1")
        return v


class StorageConfig(BaseModel):
    data_dir: str = "./data"


class OTXToolConfig(BaseModel):
    base_url: str = "https://otx.alienvault.com/api/v1"
    timeout_seconds: float = 30.0


class ToolsConfig(BaseModel):
    otx: OTXToolConfig = Field(default_factory=OTXToolConfig)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 20
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"logging.level '{v}' is not one of {', '.join(LOG_LEVELS)}")
        return level


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Environment variables override the .env file, which overrides values
    passed in from config.yaml, which override field defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    otx_api_key: Optional[str] = Field(default=None, alias="OTX_API_KEY")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> Path:
        return Path(self.storage.data_dir)

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def log_level(self) -> str:
        return self.logging.level

    def api_key(self, provider: str) -> Optional[str]:
        return {"gemini": self.gemini_api_key, "openai": self.openai_api_key}.get(provider)

    def validate_all(self) -> None:
        """
        Checks that need more than one field: API keys for the provider and
        every fallback, and loop bounds that contradict each other.
        """
        problems: list[str] = []

        if not self.api_key(self.llm.provider):
            problems.append(
                f"LLM provider '{self.llm.provider}' requires {_KEY_ENV[self.llm.provider]} "
                f"to be set in the environment or .env file."
            )

        for fallback in self.llm.fallback_providers:
            if fallback not in PROVIDERS:
                problems.append(f"llm.fallback_providers contains unknown provider '{fallback}'.")
            elif not self.api_key(fallback):
                problems.append(
                    f"Fallback provider '{fallback}' requires {_KEY_ENV[fallback]}; set it "
                    f"or drop '{fallback}' from llm.fallback_providers."
                )

        if self.agent.step_max_iterations > self.agent.max_iterations:
            problems.append("agent.step_max_iterations must not exceed agent.max_iterations.")

        if not self.storage.data_dir.strip():
            problems.append("storage.data_dir must not be empty.")

        if problems:
            listing = "\n".join(f"  {n}. {p}" for n, p in enumerate(problems, start=1))
            raise ConfigError(
                f"AlertSleuth cannot start: {len(problems)} configuration problem(s) found:\n\n"
                f"{listing}\n\nEdit config/config.yaml or your .env file and try again."
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_CONFIG_PATH = Path("config/config.yaml")
_SECTIONS = ("agent", "llm", "storage", "tools", "logging")

_current: Optional[Settings] = None
_current_lock = threading.Lock()


def _config_path(explicit: str | Path | None) -> Path:
    if explicit is not None:
        return Path(explicit)
    from_env = os.environ.get("ALERTSLEUTH_CONFIG")
    return Path(from_env) if from_env else DEFAULT_CONFIG_PATH


def _read_sections(path: Path) -> dict:
    """Known top-level sections of a YAML file; a missing file yields {}."""
    if not path.exists():
        return {}
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {k: v for k, v in data.items() if k in _SECTIONS}


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Build Settings from config.yaml plus the environment and make it current."""
    global _current
    settings = Settings(**_read_sections(_config_path(config_path)))
    with _current_lock:
        _current = settings
    return settings


def get_settings() -> Settings:
    """The settings of the last load_settings() call, loading defaults on first use."""
    with _current_lock:
        current = _current
    return current if current is not None else load_settings()
