"""Shared fixtures: scripted providers, quiet logging, settings isolation."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

import pytest
from pydantic import BaseModel, Field

from toolrelay.foundation.config import clear_settings_cache
from toolrelay.foundation.core import AgentConfiguration, BaseTool, Message, ToolMetadata
from toolrelay.foundation.errors import JsonDict
from toolrelay.providers import ProviderDelta, ToolCallFragment
from toolrelay.runtime.observability import CollectingRenderer, configure_logging


@pytest.fixture(autouse=True)
def quiet_logging() -> CollectingRenderer:
    renderer = CollectingRenderer()
    configure_logging(level="DEBUG", renderer=renderer)
    return renderer


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "OPENAI_API_KEY", "AI_PIPE_API_KEY", "AIPIPE_API_KEY", "AI_PIPE_BASE_URL",
        "GOOGLE_SEARCH_API_KEY", "GOOGLE_API_KEY", "GOOGLE_SEARCH_ENGINE_ID", "GOOGLE_CSE_ID",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir("/")  # no stray .env file
    clear_settings_cache()


# ─────────────────────────────────────────────────────────────────────────────
# Scripted Provider
# ─────────────────────────────────────────────────────────────────────────────


Script = list[ProviderDelta | Exception] | Exception


@dataclass
class ScriptedAdapter:
    """Provider double: each stream() call consumes the next script.

    A script is an exception (raised before any delta) or a list of deltas;
    an exception inside the list is raised when reached.
    """

    provider: str
    scripts: list[Script] = field(default_factory=list)
    default_model: str = "scripted-model"
    calls: list[tuple[list[Message], AgentConfiguration, list[JsonDict]]] = field(default_factory=list)

    async def stream(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        tools: Sequence[JsonDict],
    ) -> AsyncIterator[ProviderDelta]:
        self.calls.append((list(messages), config, list(tools)))
        if not self.scripts:
            raise AssertionError(f"{self.provider} called more often than scripted")
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for delta in script:
            if isinstance(delta, Exception):
                raise delta
            yield delta

    async def check_connection(self, config: AgentConfiguration) -> str:
        if self.scripts and isinstance(self.scripts[0], Exception):
            raise self.scripts.pop(0)
        return config.model or self.default_model


def text(*chunks: str, finish: str = "stop") -> list[ProviderDelta]:
    """Deltas streaming `chunks` then a finish reason."""
    return [ProviderDelta(content=c) for c in chunks] + [ProviderDelta(finish_reason=finish)]


def tool_call(index: int, call_id: str, name: str, *argument_fragments: str) -> list[ProviderDelta]:
    """Deltas for one tool call: id+name first, then argument fragments."""
    deltas = [ProviderDelta(tool_calls=(ToolCallFragment(index=index, id=call_id, name=name),))]
    deltas += [ProviderDelta(tool_calls=(ToolCallFragment(index=index, arguments=a),)) for a in argument_fragments]
    return deltas


FINISH_TOOLS = ProviderDelta(finish_reason="tool_calls")


# ─────────────────────────────────────────────────────────────────────────────
# Recording Tool
# ─────────────────────────────────────────────────────────────────────────────


class EchoParams(BaseModel):
    text: str = Field(..., description="Text to echo back")
    times: int = Field(default=1, ge=1, le=5, description="Repetitions")


class EchoTool(BaseTool[EchoParams]):
    metadata = ToolMetadata(name="echo", description="Echo the given text back to the model", category="test")
    params_schema = EchoParams

    def __init__(self) -> None:
        self.invocations: list[EchoParams] = []

    async def run(self, params: EchoParams) -> JsonDict:
        self.invocations.append(params)
        return {"success": True, "echo": params.text * params.times}


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()
