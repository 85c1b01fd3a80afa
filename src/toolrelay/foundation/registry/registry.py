"""Central registry for tool discovery and declaration.

The registry provides:
- Tool registration and lookup by name
- Declarations (OpenAI function format) filtered by a per-turn allowlist
- Availability report for health endpoints

The registry is populated at startup and read-only during turns.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator

from pydantic import BaseModel

from toolrelay.foundation.core import BaseTool
from toolrelay.foundation.errors import JsonDict


class ToolRegistry:
    """Name -> tool map with allowlist-aware declarations.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(SearchTool(settings.search))
        >>> registry.declarations(["google_search"])
        [{'type': 'function', 'function': {'name': 'google_search', ...}}]
    """

    __slots__ = ("_tools",)

    def __init__(self, tools: Collection[BaseTool[BaseModel]] = ()) -> None:
        self._tools: dict[str, BaseTool[BaseModel]] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool[BaseModel]) -> None:
        """Register a tool instance. Names are unique."""
        name = tool.metadata.name
        if name in self._tools:
            raise ValueError(f"Tool '{name}' already registered. Use unregister() first.")
        if len(tool.metadata.description) < 10:
            raise ValueError(f"Tool '{name}' description too short for LLM selection.")
        self._tools[name] = tool

    def unregister(self, name: str) -> bool:
        """Remove a tool by name. Returns True if found."""
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool[BaseModel] | None:
        return self._tools.get(name)

    def __getitem__(self, name: str) -> BaseTool[BaseModel]:
        return self._tools[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[BaseTool[BaseModel]]:
        return iter(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    # ─────────────────────────────────────────────────────────────────
    # Allowlist
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def is_enabled(name: str, enabled: Collection[str] | None) -> bool:
        """Empty or missing allowlist means every registered tool is enabled."""
        return not enabled or name in enabled

    def enabled_tools(self, enabled: Collection[str] | None = None) -> list[BaseTool[BaseModel]]:
        return [t for t in self._tools.values() if self.is_enabled(t.metadata.name, enabled)]

    def declarations(self, enabled: Collection[str] | None = None) -> list[JsonDict]:
        """Declarations for the enabled subset, in registration order."""
        return [t.declaration() for t in self.enabled_tools(enabled)]

    def health(self) -> dict[str, bool]:
        """Per-tool availability."""
        return {name: tool.available for name, tool in self._tools.items()}

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={self.names()!r})"
