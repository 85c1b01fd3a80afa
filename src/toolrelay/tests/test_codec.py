"""Tests for the turn event wire codec."""

from __future__ import annotations

from collections.abc import AsyncIterator

import orjson
import pytest

from toolrelay.foundation.core import Message, ToolCallRequest
from toolrelay.foundation.errors import ErrorCode
from toolrelay.io.streaming import (
    DONE_FRAME,
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageEvent,
    StreamDecoder,
    StreamEvent,
    ToolCallsCompleteEvent,
    ToolCallsEvent,
    decode_stream,
    encode_event,
    encode_stream,
)
from toolrelay.io.streaming.codec import UNTERMINATED_MESSAGE

CALL = ToolCallRequest.create("call_1", "execute_python", '{"code":"1+1"}')

TURN: list[StreamEvent] = [
    ContentEvent(content="Let me ", accumulated="Let me "),
    ContentEvent(content="check – ✓", accumulated="Let me check – ✓"),
    ToolCallsEvent(tool_calls=(ToolCallRequest.create("call_1", "execute_python", '{"co'),)),
    ToolCallsCompleteEvent(tool_calls=(CALL,)),
    MessageEvent(message=Message.assistant("Let me check – ✓", (CALL,))),
    MessageEvent(message=Message.tool("call_1", '{"success":true,"result":2}')),
    CompleteEvent(content="It is 2.", finish_reason="stop"),
]


async def _aiter(items: list) -> AsyncIterator:
    for item in items:
        yield item


async def _collect(source: AsyncIterator) -> list:
    return [item async for item in source]


# ─────────────────────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────────────────────


class TestEncoding:
    def test_frame_shape(self) -> None:
        frame = encode_event(ContentEvent(content="4", accumulated="4"))
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert orjson.loads(frame[len("data: "):]) == {"type": "content", "content": "4", "accumulated": "4"}

    def test_message_uses_wire_aliases(self) -> None:
        frame = encode_event(MessageEvent(message=Message.tool("call_1", "{}")))
        body = orjson.loads(frame[len("data: "):])
        assert body["message"]["toolCallId"] == "call_1"
        assert body["message"]["role"] == "tool"

    @pytest.mark.asyncio
    async def test_stream_ends_with_done_after_terminal(self) -> None:
        frames = await _collect(encode_stream(_aiter([*TURN, ContentEvent(content="late", accumulated="late")])))
        assert frames[-1] == DONE_FRAME
        assert len(frames) == len(TURN) + 1
        assert "late" not in "".join(frames)

    @pytest.mark.asyncio
    async def test_unterminated_source_gets_error_event(self) -> None:
        frames = await _collect(encode_stream(_aiter([ContentEvent(content="a", accumulated="a")])))
        body = orjson.loads(frames[-2][len("data: "):])
        assert body == {"type": "error", "error": UNTERMINATED_MESSAGE, "code": ErrorCode.PROTOCOL_ERROR.value}
        assert frames[-1] == DONE_FRAME

    @pytest.mark.asyncio
    async def test_raising_source_gets_error_event(self) -> None:
        async def broken() -> AsyncIterator[StreamEvent]:
            yield ContentEvent(content="a", accumulated="a")
            raise RuntimeError("generator blew up")

        frames = await _collect(encode_stream(broken()))
        body = orjson.loads(frames[-2][len("data: "):])
        assert body["type"] == "error"
        assert body["error"] == "generator blew up"
        assert frames[-1] == DONE_FRAME


# ─────────────────────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────────────────────


class TestDecoding:
    def test_every_variant_survives_the_wire(self) -> None:
        wire = "".join(encode_event(e) for e in TURN) + DONE_FRAME
        decoder = StreamDecoder()
        assert decoder.feed(wire.encode()) == TURN
        assert decoder.done

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 64])
    def test_arbitrary_byte_splits(self, chunk_size: int) -> None:
        wire = ("".join(encode_event(e) for e in TURN) + DONE_FRAME).encode()
        decoder = StreamDecoder()
        events: list[StreamEvent] = []
        for start in range(0, len(wire), chunk_size):
            events.extend(decoder.feed(wire[start:start + chunk_size]))
        assert events == TURN

    def test_multibyte_character_split_across_reads(self) -> None:
        wire = encode_event(ContentEvent(content="✓", accumulated="✓")).encode()
        cut = wire.index("✓".encode()) + 1
        decoder = StreamDecoder()
        assert decoder.feed(wire[:cut]) == []
        assert decoder.feed(wire[cut:]) == [ContentEvent(content="✓", accumulated="✓")]

    def test_malformed_frames_are_skipped(self) -> None:
        wire = (
            "data: {not json}\n\n"
            'data: {"type": "mystery"}\n\n'
            ": keep-alive comment\n\n"
            "event: ping\n\n"
            + encode_event(CompleteEvent(content="ok"))
        )
        assert StreamDecoder().feed(wire) == [CompleteEvent(content="ok")]

    def test_input_after_done_is_ignored(self) -> None:
        decoder = StreamDecoder()
        decoder.feed(DONE_FRAME)
        assert decoder.feed(encode_event(CompleteEvent())) == []

    def test_crlf_line_endings(self) -> None:
        frame = encode_event(ContentEvent(content="x", accumulated="x")).replace("\n", "\r\n")
        assert StreamDecoder().feed(frame) == [ContentEvent(content="x", accumulated="x")]

    def test_close_flushes_trailing_line(self) -> None:
        decoder = StreamDecoder()
        assert decoder.feed(encode_event(CompleteEvent()).rstrip("\n")) == []
        assert decoder.close() == [CompleteEvent()]

    @pytest.mark.asyncio
    async def test_decode_stream_stops_at_terminal(self) -> None:
        wire = "".join(encode_event(e) for e in TURN) + encode_event(ContentEvent(content="x", accumulated="x"))
        events = await _collect(decode_stream(_aiter([wire.encode()])))
        assert events == TURN

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tail", ["", DONE_FRAME])
    async def test_decode_stream_synthesizes_terminal(self, tail: str) -> None:
        wire = encode_event(ContentEvent(content="a", accumulated="a")) + tail
        events = await _collect(decode_stream(_aiter([wire.encode()])))
        assert events[-1] == ErrorEvent(error=UNTERMINATED_MESSAGE, code=ErrorCode.PROTOCOL_ERROR)
        assert len(events) == 2
