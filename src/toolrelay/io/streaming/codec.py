"""Wire codec for turn event streams.

Frame format (UTF-8 text, SSE-compatible):

    data: {"type": "content", "content": "4", "accumulated": "4"}\\n\\n
    ...
    data: [DONE]\\n\\n

Each frame carries one JSON-encoded StreamEvent, except the final sentinel
which has no JSON body. Consumers buffer partial frames across reads and
split on line boundaries before decoding.

Usage:
    >>> frame = encode_event(ContentEvent(content="4", accumulated="4"))
    >>> decoder = StreamDecoder()
    >>> decoder.feed(frame.encode())
    [ContentEvent(type='content', content='4', accumulated='4')]
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator

import orjson
from pydantic import ValidationError

from toolrelay.foundation.errors import ErrorCode, ProtocolError
from toolrelay.runtime.observability import get_logger

from .events import STREAM_EVENT_ADAPTER, ErrorEvent, StreamEvent

log = get_logger("toolrelay.codec")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"{DATA_PREFIX} {DONE_SENTINEL}\n\n"
CONTENT_TYPE = "text/event-stream"

UNTERMINATED_MESSAGE = "stream ended without a terminal event"


# ═══════════════════════════════════════════════════════════════════════════════
# Encoding
# ═══════════════════════════════════════════════════════════════════════════════

def event_to_dict(event: StreamEvent) -> dict:
    return event.model_dump(mode="json", by_alias=True)


def encode_event(event: StreamEvent) -> str:
    """One `data:` frame for `event`."""
    return f"{DATA_PREFIX} {orjson.dumps(event_to_dict(event)).decode()}\n\n"


async def encode_stream(events: AsyncIterable[StreamEvent]) -> AsyncIterator[str]:
    """Frame a turn's events, always ending with a terminal event and `[DONE]`.

    Events after the first terminal event are dropped. A source that ends
    (or raises) without a terminal event gets a synthesized `error` event.
    """
    terminated = False
    try:
        async for event in events:
            yield encode_event(event)
            if event.terminal:
                terminated = True
                break
    except Exception as e:
        log.exception("event source failed")
        yield encode_event(ErrorEvent(error=str(e) or type(e).__name__, code=ErrorCode.UNKNOWN))
        terminated = True
    if not terminated:
        yield encode_event(ErrorEvent(error=UNTERMINATED_MESSAGE, code=ErrorCode.PROTOCOL_ERROR))
    yield DONE_FRAME


# ═══════════════════════════════════════════════════════════════════════════════
# Decoding
# ═══════════════════════════════════════════════════════════════════════════════

def decode_event(payload: str | bytes) -> StreamEvent:
    """Decode one JSON event body. Raises ProtocolError on malformed input."""
    try:
        return STREAM_EVENT_ADAPTER.validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"malformed stream event: {e.error_count()} validation error(s)") from e


class StreamDecoder:
    """Incremental frame decoder.

    Accepts arbitrary byte/str slices (a UTF-8 sequence or a frame may be
    split across reads), emits events for each complete `data:` line.
    Malformed frames are logged and skipped. Input after `[DONE]` is ignored.
    """

    __slots__ = ("_utf8", "_buffer", "_done")

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._done = False

    @property
    def done(self) -> bool:
        """True once the `[DONE]` sentinel has been read."""
        return self._done

    def feed(self, data: bytes | str) -> list[StreamEvent]:
        if self._done:
            return []
        self._buffer += self._utf8.decode(data) if isinstance(data, bytes) else data
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def close(self) -> list[StreamEvent]:
        """Flush any trailing, newline-less line."""
        if self._done:
            return []
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        return self._decode_lines([tail]) if tail.strip() else []

    def _decode_lines(self, lines: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for raw in lines:
            if self._done:
                break
            line = raw.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                self._done = True
            elif payload:
                try:
                    events.append(decode_event(payload))
                except ProtocolError as e:
                    log.warning("skipping malformed frame", error=str(e), size=len(payload))
        return events


async def decode_stream(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[StreamEvent]:
    """Decode a chunked byte stream into events, ending at the first terminal event.

    A stream that closes (or sends `[DONE]`) before any terminal event yields
    a synthesized `error` event, so consumers always see a terminal event.
    """
    decoder = StreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
            if event.terminal:
                return
        if decoder.done:
            break
    for event in decoder.close():
        yield event
        if event.terminal:
            return
    yield ErrorEvent(error=UNTERMINATED_MESSAGE, code=ErrorCode.PROTOCOL_ERROR)
