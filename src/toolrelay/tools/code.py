"""Sandboxed code execution tools (JavaScript and Python)."""

from __future__ import annotations

from typing import ClassVar, TypeVar

from pydantic import BaseModel, Field

from toolrelay.foundation.config import SandboxSettings
from toolrelay.foundation.core import BaseTool, ToolMetadata
from toolrelay.foundation.errors import JsonDict
from toolrelay.runtime.sandbox import Language, SandboxEngine

# Slack on top of the sandbox deadline so the engine's own timeout result wins
_DISPATCH_MARGIN_S = 5.0


class ExecuteJavaScriptParams(BaseModel):
    code: str = Field(..., min_length=1, description="The JavaScript code to execute; the completion value is the result")
    timeout: int = Field(default=5000, ge=1000, le=30000, description="Execution timeout in milliseconds")


class ExecutePythonParams(BaseModel):
    code: str = Field(..., min_length=1, description="The Python code to execute; the last expression is the result")
    timeout: int = Field(default=5000, ge=1000, le=30000, description="Execution timeout in milliseconds")


P = TypeVar("P", ExecuteJavaScriptParams, ExecutePythonParams)


class SandboxTool(BaseTool[P]):
    """Runs model-supplied code in an isolated worker interpreter.

    Returns `{success, result|error, logs, executionTime}`; failures of the
    code itself (exceptions, timeout) are results, not dispatcher errors.
    """

    language: ClassVar[Language]

    def __init__(self, engine: SandboxEngine, settings: SandboxSettings | None = None) -> None:
        self._engine = engine
        self._settings = settings or SandboxSettings()

    @property
    def available(self) -> bool:
        return self._engine.available

    def clamp_timeout(self, timeout_ms: int) -> int:
        return max(self._settings.min_timeout_ms, min(timeout_ms, self._settings.max_timeout_ms))

    def timeout_for(self, params: P) -> float:
        return self.clamp_timeout(params.timeout) / 1000 + _DISPATCH_MARGIN_S

    async def run(self, params: P) -> JsonDict:
        result = await self._engine.run(params.code, self.clamp_timeout(params.timeout), self.language)
        return result.to_payload()


class ExecuteJavaScriptTool(SandboxTool[ExecuteJavaScriptParams]):
    metadata = ToolMetadata(
        name="execute_javascript",
        description="Execute JavaScript code in a sandboxed environment and return results",
        category="code",
    )
    params_schema = ExecuteJavaScriptParams
    language = "javascript"


class ExecutePythonTool(SandboxTool[ExecutePythonParams]):
    metadata = ToolMetadata(
        name="execute_python",
        description="Execute Python code in a sandboxed environment and return results",
        category="code",
    )
    params_schema = ExecutePythonParams
    language = "python"
