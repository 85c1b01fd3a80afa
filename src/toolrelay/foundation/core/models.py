"""Conversation data model: messages, tool calls, agent configuration, tool results.

All models are frozen Pydantic models. History is append-only: the orchestrator
copies the caller's messages into a per-turn list and appends to it, never
mutating the caller's sequence or a message. Wire field names follow the chat
client (camelCase aliases), attributes stay snake_case.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from toolrelay.foundation.config import ProviderName
from toolrelay.foundation.errors import ToolError


class Role(StrEnum):
    """Message author roles. Fixed at creation."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Name and raw argument text of a tool call (OpenAI function shape)."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    arguments: str = ""


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model.

    `function.arguments` is the verbatim concatenation of streamed fragments;
    it is only parsed when the call is dispatched.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: Literal["function"] = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments

    @classmethod
    def create(cls, id: str, name: str, arguments: str = "") -> ToolCallRequest:  # noqa: A002
        return cls(id=id, function=FunctionCall(name=name, arguments=arguments))


class Message(BaseModel):
    """One immutable conversation message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] | None = Field(default=None, alias="toolCalls")
    tool_call_id: str | None = Field(default=None, alias="toolCallId")

    @field_validator("content", mode="before")
    @classmethod
    def _none_to_empty(cls, v: str | None) -> str:
        return "" if v is None else v

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: tuple[ToolCallRequest, ...] | None = None) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_wire(self) -> dict[str, Any]:
        """Client wire shape (camelCase)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_provider(self) -> dict[str, Any]:
        """OpenAI chat-completions message shape (snake_case)."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.model_dump(mode="json") for tc in self.tool_calls]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


class AgentConfiguration(BaseModel):
    """Per-turn model configuration. Immutable; fallback builds a new value.

    Attributes:
        provider: Upstream backend selector
        model: Model identifier (empty = provider default)
        api_key: Credential (empty = provider credential from settings)
        temperature: Sampling temperature in [0, 2]
        max_tokens: Output token cap in [1, 4000]
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    provider: ProviderName = "aipipe"
    model: str = ""
    api_key: SecretStr | None = Field(default=None, alias="apiKey")
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7
    max_tokens: Annotated[int, Field(ge=1, le=4000, alias="maxTokens")] = 1000

    @field_validator("api_key", mode="after")
    @classmethod
    def _blank_key_is_none(cls, v: SecretStr | None) -> SecretStr | None:
        return v if v is not None and v.get_secret_value().strip() else None

    def to_wire(self) -> dict[str, Any]:
        """Client wire shape; the credential is sent in clear."""
        body = self.model_dump(mode="json", by_alias=True, exclude={"api_key"})
        if self.api_key is not None:
            body["apiKey"] = self.api_key.get_secret_value()
        return body

    def for_fallback(self, provider: ProviderName, model: str = "") -> AgentConfiguration:
        """Copy targeting another provider; `self` is left untouched."""
        return self.model_copy(update={"provider": provider, "model": model, "api_key": None})


class ChatTurnRequest(BaseModel):
    """Turn request: ordered history, configuration, optional tool allowlist (empty = all)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    messages: tuple[Message, ...]
    config: AgentConfiguration
    tools: tuple[str, ...] = ()


class ToolResult(BaseModel):
    """Normalized result envelope for one tool invocation."""

    model_config = ConfigDict(frozen=True)

    success: bool
    tool_name: str
    data: Any = None
    error: ToolError | None = None
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, tool_name: str, data: Any, elapsed_ms: float = 0.0) -> ToolResult:
        return cls(success=True, tool_name=tool_name, data=data, elapsed_ms=elapsed_ms)

    @classmethod
    def fail(cls, error: ToolError, elapsed_ms: float = 0.0) -> ToolResult:
        return cls(success=False, tool_name=error.tool_name, error=error, elapsed_ms=elapsed_ms)

    def to_content(self) -> str:
        """JSON text echoed back to the model as the `tool` message content."""
        if isinstance(self.data, dict):
            body = self.data
        elif self.error is not None:
            body = {"success": False, "error": self.error.message, "code": self.error.code.value}
        else:
            body = {"success": self.success, "result": self.data}
        return orjson.dumps(body, default=str).decode()
