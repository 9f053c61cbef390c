# src/llmsession/config/models.py
"""
Pydantic models for llmsession configuration.

`ResponderSettings` is a pydantic-settings model: it gathers the packaged
defaults, TOML files, environment variables and keyword overrides and
validates them into typed sections for the rest of the library.
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict,
                               TomlConfigSettingsSource)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.toml"


class CacheSettings(BaseModel):
    """
    Cache provider configuration.

    Selects where session entries live and how long they survive without
    activity.
    """

    backend: Literal["memory", "redis"] = Field("memory", description="Cache backend (memory or redis)")
    url: str = Field("redis://localhost:6379/0", description="Redis connection URL (redis backend only)")
    expire_time: int = Field(3600, ge=1, description="Session TTL in seconds, reset on every write")
    key_prefix: str = Field("", description="Namespace prepended to every Redis key")
    max_items: int = Field(10000, ge=0, description="Entry limit for the memory backend (0=unlimited)")

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class OpenAISettings(BaseModel):
    """Connection settings for the OpenAI model invoker."""

    api_key: Optional[str] = Field(None, description="API key; falls back to OPENAI_API_KEY")
    base_url: Optional[str] = Field(None, description="Custom API endpoint URL")
    model: str = Field("gpt-4o", description="Model identifier")
    timeout: float = Field(60.0, gt=0, description="Request timeout in seconds")


class LoggingSettings(BaseModel):
    """
    Options passed to `configure_logging()`.

    Typed so values coming from environment variables are converted; any
    other key understood by `configure_logging()` (formats, rotation sizes)
    is accepted as-is.
    """

    console_enabled: bool = Field(False, description="Show every record on stderr, not only display records")
    console_level: str = Field("WARNING", description="Console handler level when enabled")
    display_min_level: str = Field("INFO", description="Minimum level for display=True records")
    file_enabled: bool = Field(False, description="Write records to a log file")
    file_level: str = Field("DEBUG", description="File handler level")
    file_directory: str = Field("~/.local/share/llmsession/logs", description="Directory for log files")
    file_mode: Literal["per_run", "single"] = Field("per_run", description="New file per run, or one rotated file")
    components: Dict[str, str] = Field(default_factory=dict, description="Per-logger level overrides")

    class Config:
        extra = "allow"


class ResponderSettings(BaseSettings):
    """
    Root configuration for an AIResponder.

    Mirrors the top level of ``default_config.toml``. Instantiating it
    directly reads, lowest precedence first, the packaged defaults,
    ``LLMSESSION_``-prefixed environment variables (nested keys joined by
    ``__``) and keyword arguments. `load_settings()` adds user TOML files.
    """

    model_config = SettingsConfigDict(
        env_prefix="LLMSESSION_",
        env_nested_delimiter="__",
        toml_file=[DEFAULT_CONFIG_PATH],
    )

    instructions: str = Field("You are a helpful assistant.", description="System instructions for every call")
    context_strategy: Literal["transcript", "continuation"] = Field(
        "transcript", description="How prior context is carried between turns"
    )
    length_of_context: int = Field(10, ge=1, description="Retention budget (messages) for the transcript strategy")
    max_tokens: int = Field(500, ge=1, description="Maximum tokens generated per call")
    max_steps: int = Field(5, ge=1, description="Maximum model steps (tool round-trips) per call")
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0, description="Sampling temperature")
    cache: CacheSettings = Field(default_factory=CacheSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # One source per TOML file so later files deep-merge over earlier ones.
        toml_files = settings_cls.model_config.get("toml_file") or []
        if isinstance(toml_files, (str, Path)):
            toml_files = [toml_files]
        file_sources = tuple(
            TomlConfigSettingsSource(settings_cls, toml_file=path) for path in reversed(list(toml_files))
        )
        return (init_settings, env_settings, *file_sources)
