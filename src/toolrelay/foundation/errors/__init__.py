"""Unified error handling for toolrelay.

- ErrorCode: Standard error codes for tool and provider failures
- ToolError/ToolException: Structured tool errors and their raising wrapper
- RelayError taxonomy: Transport, Protocol, SchemaValidation, Execution, Configuration
"""

from typing import Any

from .errors import (
    ConfigurationError,
    ErrorCode,
    ExecutionError,
    ProtocolError,
    RelayError,
    SchemaValidationError,
    ToolError,
    ToolException,
    TransportError,
    classify_exception,
)

JsonDict = dict[str, Any]

__all__ = [
    "ErrorCode", "ToolError", "ToolException", "classify_exception",
    "RelayError", "TransportError", "ProtocolError", "SchemaValidationError",
    "ExecutionError", "ConfigurationError",
    "JsonDict",
]
