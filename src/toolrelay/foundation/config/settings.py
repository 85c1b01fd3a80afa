"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from toolrelay.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.orchestrator.max_round_trips
    5
    >>> settings.sandbox.default_timeout_ms
    5000

    # Or with environment variables:
    # TOOLRELAY_ORCHESTRATOR_MAX_ROUND_TRIPS=3
    # TOOLRELAY_LOG_LEVEL=DEBUG
    # OPENAI_API_KEY=sk-...
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import (
    AliasChoices,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["aipipe", "openai"]

# Placeholder the upstream chat client sends when no key was entered
_PLACEHOLDER_KEYS = frozenset({"", "default_key"})


def _clean_secret(v: SecretStr | None) -> SecretStr | None:
    if v is None or v.get_secret_value().strip() in _PLACEHOLDER_KEYS:
        return None
    return v


class ProviderSettings(BaseSettings):
    """Upstream model provider endpoints, credentials and defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_PROVIDER_",
        extra="ignore",
        populate_by_name=True,
    )

    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("TOOLRELAY_PROVIDER_OPENAI_API_KEY", "OPENAI_API_KEY", "openai_api_key"),
    )
    openai_default_model: str = "gpt-4o"

    aipipe_base_url: str = Field(
        default="https://aipipe.org/openrouter/v1",
        validation_alias=AliasChoices("TOOLRELAY_PROVIDER_AIPIPE_BASE_URL", "AI_PIPE_BASE_URL", "aipipe_base_url"),
    )
    aipipe_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "TOOLRELAY_PROVIDER_AIPIPE_API_KEY", "AI_PIPE_API_KEY", "AIPIPE_API_KEY", "aipipe_api_key",
        ),
    )
    aipipe_default_model: str = "openai/gpt-4.1-nano"

    fallback_provider: ProviderName | None = Field(
        default="openai",
        description="Secondary provider used once when the primary fails",
    )
    request_timeout: PositiveFloat = Field(default=60.0, description="Provider request timeout in seconds")

    @field_validator("openai_api_key", "aipipe_api_key", mode="after")
    @classmethod
    def _drop_placeholder_keys(cls, v: SecretStr | None) -> SecretStr | None:
        return _clean_secret(v)

    def api_key_for(self, provider: ProviderName) -> SecretStr | None:
        return self.openai_api_key if provider == "openai" else self.aipipe_api_key

    def base_url_for(self, provider: ProviderName) -> str:
        return self.openai_base_url if provider == "openai" else self.aipipe_base_url

    def default_model_for(self, provider: ProviderName) -> str:
        return self.openai_default_model if provider == "openai" else self.aipipe_default_model


class SearchSettings(BaseSettings):
    """Web search executor configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_SEARCH_",
        extra="ignore",
        populate_by_name=True,
    )

    google_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "TOOLRELAY_SEARCH_GOOGLE_API_KEY", "GOOGLE_SEARCH_API_KEY", "GOOGLE_API_KEY", "google_api_key",
        ),
    )
    google_engine_id: str = Field(
        default="",
        validation_alias=AliasChoices(
            "TOOLRELAY_SEARCH_GOOGLE_ENGINE_ID", "GOOGLE_SEARCH_ENGINE_ID", "GOOGLE_CSE_ID", "google_engine_id",
        ),
    )
    google_endpoint: str = "https://www.googleapis.com/customsearch/v1"
    duckduckgo_endpoint: str = "https://api.duckduckgo.com/"
    timeout: PositiveFloat = Field(default=10.0, description="Per-backend request timeout in seconds")

    @field_validator("google_api_key", mode="after")
    @classmethod
    def _drop_placeholder_key(cls, v: SecretStr | None) -> SecretStr | None:
        return _clean_secret(v)

    @computed_field
    @property
    def google_enabled(self) -> bool:
        """Google is only tried when both key and engine id are configured."""
        return self.google_api_key is not None and bool(self.google_engine_id)


class SandboxSettings(BaseSettings):
    """Sandboxed execution limits."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_SANDBOX_",
        extra="ignore",
    )

    default_timeout_ms: PositiveInt = 5000
    min_timeout_ms: PositiveInt = 1000
    max_timeout_ms: PositiveInt = 30000
    memory_limit_mb: PositiveInt = Field(default=256, description="Address-space cap for the worker (POSIX only)")
    max_log_entries: PositiveInt = Field(default=1000, description="Captured log entries kept per run")

    @model_validator(mode="after")
    def _check_bounds(self) -> SandboxSettings:
        if not self.min_timeout_ms <= self.default_timeout_ms <= self.max_timeout_ms:
            raise ValueError("default_timeout_ms must lie within [min_timeout_ms, max_timeout_ms]")
        return self


class OrchestratorSettings(BaseSettings):
    """Turn state machine limits."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_ORCHESTRATOR_",
        extra="ignore",
    )

    max_round_trips: Annotated[int, Field(ge=1, le=20)] = 5
    continue_after_tools: bool = Field(
        default=True,
        description="Re-enter the model with tool results; when false the turn ends after the tool round trip",
    )


class WorkflowSettings(BaseSettings):
    """AI Pipe workflow executor configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_WORKFLOW_",
        extra="ignore",
    )

    fallback_models: list[str] = Field(
        default_factory=lambda: ["openai/gpt-4.0-nano", "openai/gpt-4", "openai/gpt-3.5-turbo"],
    )
    timeout: PositiveFloat = 60.0


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"


class RelaySettings(BaseSettings):
    """Root settings for toolrelay.

    Loads configuration from environment variables with TOOLRELAY_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        TOOLRELAY_ENVIRONMENT=production
        TOOLRELAY_PROVIDER_FALLBACK_PROVIDER=openai
        TOOLRELAY_SANDBOX_DEFAULT_TIMEOUT_MS=3000
        TOOLRELAY_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = "development"

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Get the global settings instance (cached).

    Only composition roots call this; the orchestrator and executors receive
    the settings object explicitly.
    """
    return RelaySettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
