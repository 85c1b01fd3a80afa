"""Built-in tools and the default registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from toolrelay.foundation.registry import ToolRegistry
from toolrelay.runtime.sandbox import SandboxEngine

from .code import ExecuteJavaScriptParams, ExecuteJavaScriptTool, ExecutePythonParams, ExecutePythonTool, SandboxTool
from .scrape import BrowserScrapeTool, ScrapeParams, extract_text, extract_title, parse_page
from .search import GoogleSearchTool, SearchParams, SearchResponse, placeholder_results
from .workflow import AiPipeTool, WorkflowParams

if TYPE_CHECKING:
    import httpx

    from toolrelay.foundation.config import RelaySettings


def build_registry(settings: RelaySettings, client: httpx.AsyncClient) -> ToolRegistry:
    """Registry with every built-in tool, configured from `settings`."""
    engine = SandboxEngine.from_settings(settings.sandbox)
    return ToolRegistry([
        GoogleSearchTool(settings.search, client),
        AiPipeTool.from_settings(settings.providers, settings.workflow, client),
        ExecuteJavaScriptTool(engine, settings.sandbox),
        BrowserScrapeTool(client),
        ExecutePythonTool(engine, settings.sandbox),
    ])


__all__ = [
    "build_registry",
    "GoogleSearchTool", "SearchParams", "SearchResponse", "placeholder_results",
    "AiPipeTool", "WorkflowParams",
    "SandboxTool", "ExecuteJavaScriptTool", "ExecuteJavaScriptParams", "ExecutePythonTool", "ExecutePythonParams",
    "BrowserScrapeTool", "ScrapeParams", "extract_text", "extract_title", "parse_page",
]
