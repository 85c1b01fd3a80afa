"""Client side of the turn stream: HTTP consumer and transcript folding."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field

import httpx

from toolrelay.foundation.core import ChatTurnRequest, Message, ToolCallRequest
from toolrelay.foundation.errors import ErrorCode
from toolrelay.runtime.observability import get_logger

from .codec import UNTERMINATED_MESSAGE, decode_stream
from .events import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageEvent,
    StreamEvent,
    ToolCallsCompleteEvent,
    ToolCallsEvent,
)

log = get_logger("toolrelay.consumer")


def request_body(request: ChatTurnRequest) -> dict:
    return {
        "messages": [m.to_wire() for m in request.messages],
        "config": request.config.to_wire(),
        "tools": list(request.tools),
    }


class ChatStreamClient:
    """POSTs a turn request and yields the decoded event stream.

    Always yields exactly one terminal event: HTTP and transport failures
    surface as `error` events rather than exceptions.

    Example:
        >>> async with httpx.AsyncClient() as http:
        ...     client = ChatStreamClient("http://localhost:8000", client=http)
        ...     transcript = await collect_turn(client.stream(request))
    """

    __slots__ = ("_base_url", "_path", "_client")

    def __init__(self, base_url: str, *, client: httpx.AsyncClient, path: str = "/api/chat") -> None:
        self._base_url = base_url.rstrip("/")
        self._path = path
        self._client = client

    @property
    def url(self) -> str:
        return f"{self._base_url}{self._path}"

    async def stream(self, request: ChatTurnRequest) -> AsyncIterator[StreamEvent]:
        try:
            async with self._client.stream("POST", self.url, json=request_body(request)) as response:
                if response.status_code >= 400:
                    await response.aread()
                    log.warning("turn request rejected", status=response.status_code)
                    yield ErrorEvent(
                        error=f"HTTP {response.status_code}: {response.text[:200]}",
                        code=ErrorCode.NETWORK_ERROR,
                    )
                    return
                async for event in decode_stream(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as e:
            log.warning("turn stream broken", error=str(e))
            yield ErrorEvent(error=f"Network error: {e}", code=ErrorCode.NETWORK_ERROR)


@dataclass(slots=True)
class TurnTranscript:
    """Everything a consumer learned from one turn."""

    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    messages: list[Message] = field(default_factory=list)
    events: list[StreamEvent] = field(default_factory=list)
    terminal: CompleteEvent | ErrorEvent | None = None

    @property
    def succeeded(self) -> bool:
        return isinstance(self.terminal, CompleteEvent)

    @property
    def error(self) -> str | None:
        return self.terminal.error if isinstance(self.terminal, ErrorEvent) else None

    @property
    def finish_reason(self) -> str | None:
        return self.terminal.finish_reason if isinstance(self.terminal, CompleteEvent) else None


async def collect_turn(events: AsyncIterable[StreamEvent]) -> TurnTranscript:
    """Fold a turn's events into a transcript. Stops at the terminal event."""
    transcript = TurnTranscript()
    async for event in events:
        transcript.events.append(event)
        match event:
            case ContentEvent(accumulated=accumulated):
                transcript.content = accumulated
            case ToolCallsEvent(tool_calls=calls) | ToolCallsCompleteEvent(tool_calls=calls):
                transcript.tool_calls = calls
            case MessageEvent(message=message):
                transcript.messages.append(message)
            case CompleteEvent():
                transcript.content = event.content or transcript.content
                transcript.tool_calls = event.tool_calls or transcript.tool_calls
                transcript.terminal = event
            case ErrorEvent():
                transcript.terminal = event
        if transcript.terminal is not None:
            break
    if transcript.terminal is None:
        transcript.terminal = ErrorEvent(error=UNTERMINATED_MESSAGE, code=ErrorCode.PROTOCOL_ERROR)
    return transcript
