"""Adapter construction by provider name."""

from __future__ import annotations

from typing import TYPE_CHECKING

from toolrelay.foundation.errors import ConfigurationError

from .aipipe import AiPipeAdapter
from .base import ProviderAdapter
from .openai import OpenAIAdapter

if TYPE_CHECKING:
    import httpx

    from toolrelay.foundation.config import ProviderName, ProviderSettings

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    AiPipeAdapter.provider: AiPipeAdapter,
    OpenAIAdapter.provider: OpenAIAdapter,
}


def create_adapter(provider: ProviderName, settings: ProviderSettings, client: httpx.AsyncClient) -> ProviderAdapter:
    """Build the adapter for `provider` with credentials resolved from `settings`."""
    try:
        adapter_cls = ADAPTERS[provider]
    except KeyError:
        raise ConfigurationError(f"Unsupported provider: {provider}") from None
    return adapter_cls.from_settings(settings, client)


def create_adapters(settings: ProviderSettings, client: httpx.AsyncClient) -> dict[str, ProviderAdapter]:
    """One adapter per known provider, sharing `client`."""
    return {name: create_adapter(name, settings, client) for name in ADAPTERS}  # type: ignore[arg-type]
