"""Toolrelay - streaming tool orchestration for chat models.

Streams a model's output to a client while the model calls tools mid-turn:
tool-call fragments are reassembled, dispatched to executors (web search,
sandboxed Python, AI Pipe workflows, page scraping), and their results fed
back to the model until the turn completes. A failing provider is replaced,
once per turn, by a configured secondary.

Quick Start:
    >>> import httpx
    >>> from toolrelay import AgentConfiguration, ChatOrchestrator, Message, get_settings, encode_stream
    >>>
    >>> async with httpx.AsyncClient() as client:
    ...     orchestrator = ChatOrchestrator.from_settings(get_settings(), client)
    ...     events = orchestrator.stream_chat([Message.user("2+2?")], AgentConfiguration())
    ...     async for frame in encode_stream(events):
    ...         print(frame, end="")
    data: {"type":"content","content":"4","accumulated":"4"}
    data: {"type":"complete","content":"4","tool_calls":[],"finish_reason":"stop"}
    data: [DONE]
"""

from toolrelay.foundation.config import RelaySettings, clear_settings_cache, get_settings
from toolrelay.foundation.core import (
    AgentConfiguration,
    BaseTool,
    ChatTurnRequest,
    Message,
    Role,
    ToolCallRequest,
    ToolMetadata,
    ToolResult,
)
from toolrelay.foundation.errors import (
    ConfigurationError,
    ErrorCode,
    ExecutionError,
    ProtocolError,
    RelayError,
    SchemaValidationError,
    ToolError,
    ToolException,
    TransportError,
)
from toolrelay.foundation.registry import ToolRegistry
from toolrelay.io.streaming import (
    ChatStreamClient,
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageEvent,
    StreamDecoder,
    StreamEvent,
    ToolCallsCompleteEvent,
    ToolCallsEvent,
    TurnTranscript,
    collect_turn,
    decode_stream,
    encode_event,
    encode_stream,
)
from toolrelay.providers import AiPipeAdapter, OpenAIAdapter, ProviderAdapter, create_adapter
from toolrelay.runtime.dispatcher import ToolDispatcher
from toolrelay.runtime.observability import configure_logging, get_logger
from toolrelay.runtime.orchestrator import ChatOrchestrator, ToolCallAccumulator
from toolrelay.runtime.sandbox import ExecutionResult, SandboxEngine
from toolrelay.tools import build_registry

__version__ = "0.1.0"

__all__ = [
    # Config
    "RelaySettings", "get_settings", "clear_settings_cache",
    # Data model
    "Message", "Role", "ToolCallRequest", "AgentConfiguration", "ChatTurnRequest", "ToolResult",
    "BaseTool", "ToolMetadata",
    # Errors
    "ErrorCode", "ToolError", "ToolException", "RelayError", "TransportError", "ProtocolError",
    "SchemaValidationError", "ExecutionError", "ConfigurationError",
    # Orchestration
    "ChatOrchestrator", "ToolCallAccumulator", "ToolDispatcher", "ToolRegistry", "build_registry",
    "ProviderAdapter", "OpenAIAdapter", "AiPipeAdapter", "create_adapter",
    "SandboxEngine", "ExecutionResult",
    # Streaming
    "StreamEvent", "ContentEvent", "ToolCallsEvent", "ToolCallsCompleteEvent", "MessageEvent",
    "ErrorEvent", "CompleteEvent", "encode_event", "encode_stream", "decode_stream", "StreamDecoder",
    "ChatStreamClient", "TurnTranscript", "collect_turn",
    # Logging
    "configure_logging", "get_logger",
]
