"""Tool dispatcher: name lookup, argument validation, normalized results.

Dispatch order for one call:
1. Exact-name lookup against the registry and the turn's allowlist.
   Unknown names fail with UNKNOWN_TOOL; no executor is touched.
2. Argument text parsed as a JSON object (empty text = no arguments).
3. Declared-schema check: required fields present, primitive types respected.
4. Pydantic validation into the tool's params model.
5. Executor call under the tool's own deadline.

Every failure comes back as a `ToolResult` with `success=False`; nothing but
cancellation escapes `dispatch()`. The dispatcher keeps no state between calls.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Collection
from typing import TYPE_CHECKING, Any

import orjson
from pydantic import BaseModel, ValidationError

from toolrelay.foundation.core import ToolResult
from toolrelay.foundation.errors import (
    ErrorCode,
    JsonDict,
    RelayError,
    SchemaValidationError,
    ToolError,
    ToolException,
)
from toolrelay.runtime.observability import get_logger

if TYPE_CHECKING:
    from toolrelay.foundation.core import AgentConfiguration, BaseTool
    from toolrelay.foundation.registry import ToolRegistry

log = get_logger("toolrelay.dispatcher")

_JSON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


def _matches(value: Any, json_type: str) -> bool:
    expected = _JSON_TYPES.get(json_type)
    if expected is None:
        return True
    # bool is an int subclass; JSON keeps them apart
    if json_type in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def check_arguments(schema: JsonDict, arguments: JsonDict) -> list[str]:
    """Problems with `arguments` against a JSON object schema; empty when valid."""
    problems = [f"missing required field '{f}'" for f in schema.get("required", ()) if f not in arguments]
    for key, prop in schema.get("properties", {}).items():
        if key not in arguments or "type" not in prop:
            continue
        value = arguments[key]
        if not _matches(value, prop["type"]):
            problems.append(f"field '{key}' must be of type {prop['type']}, got {type(value).__name__}")
    return problems


def parse_arguments(raw: str | JsonDict | None) -> JsonDict:
    """Parse argument text into a JSON object. Raises ValueError otherwise."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValueError(f"arguments are not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


def format_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in exc.errors()
    )


def validate_arguments(tool: BaseTool[Any], arguments: JsonDict) -> BaseModel:
    """Check `arguments` against the declared schema, then build the params model.

    Raises SchemaValidationError before anything reaches the tool.
    """
    if problems := check_arguments(tool.parameters_schema(), arguments):
        raise SchemaValidationError("; ".join(problems))
    try:
        return tool.params_schema.model_validate(arguments)
    except ValidationError as e:
        raise SchemaValidationError(format_validation_error(e)) from e

class ToolDispatcher:
    """Maps named invocations onto registered tools.

    Example:
        >>> dispatcher = ToolDispatcher(registry)
        >>> result = await dispatcher.dispatch("execute_python", '{"code": "1+1"}', config)
        >>> result.success, result.data["result"]
        (True, 2)
    """

    __slots__ = ("_registry",)

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def dispatch(
        self,
        name: str,
        raw_arguments: str | JsonDict | None,
        config: AgentConfiguration | None = None,
        *,
        enabled: Collection[str] | None = None,
        call_id: str = "",
    ) -> ToolResult:
        """Run one tool call and normalize its outcome."""
        started = time.perf_counter()
        tool_log = log.bind_tool(name, call_id)
        if config is not None:
            tool_log = tool_log.bind(provider=config.provider)

        def elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        tool = self._registry.get(name)
        if tool is None or not self._registry.is_enabled(name, enabled):
            tool_log.warning("unknown tool requested")
            return ToolResult.fail(
                ToolError.create(name or "unknown", "unknown tool", ErrorCode.UNKNOWN_TOOL, recoverable=False),
                elapsed(),
            )

        try:
            arguments = parse_arguments(raw_arguments)
        except ValueError as e:
            tool_log.info("argument parse failed", error=str(e))
            return ToolResult.fail(ToolError.create(name, str(e), ErrorCode.PARSE_ERROR), elapsed())

        try:
            params = validate_arguments(tool, arguments)
        except SchemaValidationError as e:
            tool_log.info("arguments rejected", error=e.message)
            return ToolResult.fail(ToolError.create(name, e.message, e.code), elapsed())

        tool_log.debug("dispatching")
        try:
            data = await asyncio.wait_for(tool.run(params), timeout=tool.timeout_for(params))
        except ToolException as e:
            tool_log.info("tool failed", code=e.error.code.value, error=e.error.message)
            return ToolResult.fail(e.error, elapsed())
        except TimeoutError:
            tool_log.warning("tool timed out")
            return ToolResult.fail(ToolError.create(name, "tool execution timed out", ErrorCode.TIMEOUT), elapsed())
        except RelayError as e:
            tool_log.warning("tool failed", code=e.code.value, error=str(e))
            return ToolResult.fail(ToolError.from_exception(name, e), elapsed())
        except Exception as e:
            tool_log.exception("tool raised")
            return ToolResult.fail(ToolError.from_exception(name, e), elapsed())

        success = bool(data.get("success", True)) if isinstance(data, dict) else True
        tool_log.debug("tool finished", success=success, elapsed_ms=round(elapsed(), 2))
        return ToolResult(success=success, tool_name=name, data=data, elapsed_ms=elapsed())
