"""Turn event stream: event types, wire codec, client-side consumer."""

from .codec import (
    CONTENT_TYPE,
    DONE_FRAME,
    DONE_SENTINEL,
    StreamDecoder,
    decode_event,
    decode_stream,
    encode_event,
    encode_stream,
    event_to_dict,
)
from .consumer import ChatStreamClient, TurnTranscript, collect_turn, request_body
from .events import (
    STREAM_EVENT_ADAPTER,
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    FinishReason,
    MessageEvent,
    StreamEvent,
    ToolCallsCompleteEvent,
    ToolCallsEvent,
    is_terminal,
)

__all__ = [
    # Events
    "StreamEvent", "ContentEvent", "ToolCallsEvent", "ToolCallsCompleteEvent",
    "MessageEvent", "ErrorEvent", "CompleteEvent", "FinishReason",
    "STREAM_EVENT_ADAPTER", "is_terminal",
    # Codec
    "encode_event", "encode_stream", "decode_event", "decode_stream", "event_to_dict",
    "StreamDecoder", "DONE_FRAME", "DONE_SENTINEL", "CONTENT_TYPE",
    # Consumer
    "ChatStreamClient", "TurnTranscript", "collect_turn", "request_body",
]
