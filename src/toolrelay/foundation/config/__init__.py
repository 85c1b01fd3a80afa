"""Configuration for toolrelay (pydantic-settings, TOOLRELAY_ prefix)."""

from .settings import (
    LoggingSettings,
    OrchestratorSettings,
    ProviderName,
    ProviderSettings,
    RelaySettings,
    SandboxSettings,
    SearchSettings,
    WorkflowSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "RelaySettings", "ProviderSettings", "SearchSettings", "SandboxSettings",
    "OrchestratorSettings", "WorkflowSettings", "LoggingSettings", "ProviderName",
    "get_settings", "clear_settings_cache",
]
