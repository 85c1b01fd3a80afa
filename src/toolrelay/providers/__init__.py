"""Upstream model providers behind a uniform delta stream."""

from .aipipe import AiPipeAdapter, deltas_from_completion
from .base import ProviderAdapter, ProviderDelta, ToolCallFragment, raise_for_status
from .factory import ADAPTERS, create_adapter, create_adapters
from .openai import OpenAIAdapter, delta_from_chunk

__all__ = [
    "ProviderAdapter", "ProviderDelta", "ToolCallFragment", "raise_for_status",
    "OpenAIAdapter", "AiPipeAdapter", "delta_from_chunk", "deltas_from_completion",
    "ADAPTERS", "create_adapter", "create_adapters",
]
