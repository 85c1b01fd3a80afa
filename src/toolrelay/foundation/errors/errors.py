"""Standardized error handling for the relay.

Provides error codes, structured tool errors for model feedback, and the
exception taxonomy used across providers, the dispatcher and the sandbox.
Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(StrEnum):
    """Standard error codes for tool and provider failures.

    Used for programmatic error handling and fallback decisions.
    """
    API_KEY_MISSING = "API_KEY_MISSING"
    API_KEY_INVALID = "API_KEY_INVALID"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_PARAMS = "INVALID_PARAMS"
    NO_RESULTS = "NO_RESULTS"
    PARSE_ERROR = "PARSE_ERROR"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connect": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "rate": ErrorCode.RATE_LIMITED,
    "auth": ErrorCode.API_KEY_INVALID,
    "permission": ErrorCode.PERMISSION_DENIED,
    "forbidden": ErrorCode.PERMISSION_DENIED,
    "parse": ErrorCode.PARSE_ERROR,
    "json": ErrorCode.PARSE_ERROR,
    "decode": ErrorCode.PARSE_ERROR,
    "validation": ErrorCode.INVALID_PARAMS,
    "value": ErrorCode.INVALID_PARAMS,
    "notfound": ErrorCode.NOT_FOUND,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.EXTERNAL_SERVICE_ERROR


def classify_exception(exc: Exception) -> ErrorCode:
    """Map exception to error code via its relay code or pattern matching on name/message."""
    if isinstance(exc, RelayError):
        return exc.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class ToolError(BaseModel):
    """Structured error response for tool failures.

    Attributes:
        tool_name: Name of the tool that failed
        message: Human-readable error message
        code: Machine-readable error code for programmatic handling
        recoverable: Whether the error might succeed on retry
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    tool_name: Annotated[str, Field(min_length=1, description="Name of the tool that produced the error")]
    message: Annotated[str, Field(min_length=1, description="Human-readable error message")]
    code: ErrorCode = Field(default=ErrorCode.UNKNOWN, description="Machine-readable error classification")
    recoverable: bool = Field(default=True, description="Whether retry might succeed")

    @classmethod
    def create(
        cls,
        tool_name: str,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        recoverable: bool = True,
    ) -> Self:
        return cls(tool_name=tool_name, message=message, code=code, recoverable=recoverable)

    @classmethod
    def from_exception(cls, tool_name: str, exc: Exception) -> Self:
        """Create from exception with auto-classification."""
        return cls(tool_name=tool_name, message=str(exc) or type(exc).__name__, code=classify_exception(exc))


class ToolException(Exception):
    """Exception wrapping a ToolError for raising from inside a tool."""

    __slots__ = ("error",)

    def __init__(self, error: ToolError) -> None:
        self.error = error
        super().__init__(error.message)


# ═══════════════════════════════════════════════════════════════════════════════
# Exception Taxonomy
# ═══════════════════════════════════════════════════════════════════════════════

class RelayError(Exception):
    """Base class for relay failures. Carries a machine-readable code."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class TransportError(RelayError):
    """Network/HTTP failure talking to a provider or executor."""

    code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, *, status_code: int | None = None, code: ErrorCode | None = None) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code


class ProtocolError(RelayError):
    """Malformed or unexpected stream framing."""

    code = ErrorCode.PROTOCOL_ERROR


class SchemaValidationError(RelayError):
    """Tool arguments do not satisfy the tool's declared schema."""

    code = ErrorCode.INVALID_PARAMS


class ExecutionError(RelayError):
    """Sandboxed code raised or was terminated."""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(self, message: str, *, kind: str = "Error") -> None:
        super().__init__(message)
        self.kind = kind


class ConfigurationError(RelayError):
    """Missing or invalid configuration; authentication-shaped ones skip fallback."""

    code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, *, is_auth: bool = False) -> None:
        super().__init__(message, code=ErrorCode.API_KEY_INVALID if is_auth else None)
        self.is_auth = is_auth
