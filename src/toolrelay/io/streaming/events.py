"""Stream events emitted by the orchestrator for one chat turn.

A turn is a sequence of non-terminal events (`content`, `tool_calls`,
`tool_calls_complete`, `message`) closed by exactly one terminal event
(`complete` or `error`). The union is discriminated on `type`, which is
also the wire tag.
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from toolrelay.foundation.core import Message, ToolCallRequest
from toolrelay.foundation.errors import ErrorCode

FinishReason = Literal["stop", "tool_calls", "length", "round_trip_limit", "content_filter"]


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    terminal: ClassVar[bool] = False


class ContentEvent(_Event):
    """Incremental text: `content` is the delta, `accumulated` the running total."""

    type: Literal["content"] = "content"
    content: str
    accumulated: str


class ToolCallsEvent(_Event):
    """Snapshot of the (possibly partial) tool calls, ordered by position index."""

    type: Literal["tool_calls"] = "tool_calls"
    tool_calls: tuple[ToolCallRequest, ...]


class ToolCallsCompleteEvent(_Event):
    """Finalized tool calls, ready to dispatch."""

    type: Literal["tool_calls_complete"] = "tool_calls_complete"
    tool_calls: tuple[ToolCallRequest, ...]


class MessageEvent(_Event):
    """A message appended to history during the turn (assistant with tool calls, or tool result)."""

    type: Literal["message"] = "message"
    message: Message


class ErrorEvent(_Event):
    """Terminal failure of the turn."""

    terminal: ClassVar[bool] = True

    type: Literal["error"] = "error"
    error: str
    code: ErrorCode = ErrorCode.UNKNOWN


class CompleteEvent(_Event):
    """Terminal success of the turn."""

    terminal: ClassVar[bool] = True

    type: Literal["complete"] = "complete"
    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    finish_reason: FinishReason = "stop"


StreamEvent = Annotated[
    Union[ContentEvent, ToolCallsEvent, ToolCallsCompleteEvent, MessageEvent, ErrorEvent, CompleteEvent],
    Field(discriminator="type"),
]

STREAM_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def is_terminal(event: StreamEvent) -> bool:
    return event.terminal
