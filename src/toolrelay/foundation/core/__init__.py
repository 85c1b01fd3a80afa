"""Core abstractions: tool base class and the conversation data model.

- BaseTool / ToolMetadata: tool definition with a typed parameter schema
- Message / ToolCallRequest: immutable conversation records
- AgentConfiguration / ChatTurnRequest: per-turn inputs
- ToolResult: normalized dispatcher output
"""

from .base import BaseTool, EmptyParams, ToolMetadata
from .models import (
    AgentConfiguration,
    ChatTurnRequest,
    FunctionCall,
    Message,
    Role,
    ToolCallRequest,
    ToolResult,
)

__all__ = [
    "BaseTool",
    "ToolMetadata",
    "EmptyParams",
    "Role",
    "FunctionCall",
    "ToolCallRequest",
    "Message",
    "AgentConfiguration",
    "ChatTurnRequest",
    "ToolResult",
]
