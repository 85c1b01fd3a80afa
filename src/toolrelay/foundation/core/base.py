"""Core tool abstractions: BaseTool and ToolMetadata.

Tools are defined by subclassing BaseTool with a typed Pydantic parameter
schema. The schema doubles as the declaration advertised to the model
(OpenAI function format) and as the validator applied before dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from toolrelay.foundation.errors import ErrorCode, JsonDict, ToolError, ToolException


class ToolMetadata(BaseModel):
    """Metadata describing a tool's capabilities and requirements.

    Attributes:
        name: Unique identifier (snake_case, e.g., "google_search")
        description: What the tool does (shown to the model for selection)
        category: Grouping category (e.g., "search", "code", "workflow")
        requires_api_key: Whether the tool needs external API credentials
        timeout: Default per-invocation deadline in seconds
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$")
    description: str = Field(..., min_length=10)
    category: str = Field(default="general")
    requires_api_key: bool = Field(default=False)
    timeout: float = Field(default=30.0, gt=0)


class EmptyParams(BaseModel):
    """Parameter schema for tools with no inputs."""


TParams = TypeVar("TParams", bound=BaseModel)


# Keywords whose values map names to subschemas, and keywords holding literal data
_NAMED_SCHEMAS = frozenset({"properties", "patternProperties", "$defs", "definitions"})
_LITERALS = frozenset({"default", "examples", "enum", "const"})


def _strip_titles(schema: Any) -> Any:
    """Drop pydantic's `title` keywords; a property *named* title is kept."""
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    if not isinstance(schema, dict):
        return schema
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "title":
            continue
        if key in _NAMED_SCHEMAS and isinstance(value, dict):
            out[key] = {name: _strip_titles(sub) for name, sub in value.items()}
        elif key in _LITERALS:
            out[key] = value
        else:
            out[key] = _strip_titles(value)
    return out


class BaseTool(ABC, Generic[TParams]):
    """Abstract base class for all tools.

    Subclasses must:
    - Define `metadata` class variable with ToolMetadata
    - Define `params_schema` class variable with the Pydantic model type
    - Implement `async run(params)` returning a JSON-serializable dict

    Tools never retry; a failure comes back to the model as a tool message.
    Raise ToolException (or use `_fail`) for expected failures.

    Example:
        >>> class EchoParams(BaseModel):
        ...     text: str = Field(..., description="Text to echo")
        ...
        >>> class EchoTool(BaseTool[EchoParams]):
        ...     metadata = ToolMetadata(name="echo", description="Echo the given text back")
        ...     params_schema = EchoParams
        ...
        ...     async def run(self, params: EchoParams) -> JsonDict:
        ...         return {"success": True, "text": params.text}
    """

    metadata: ClassVar[ToolMetadata]
    params_schema: ClassVar[type[BaseModel]]

    @abstractmethod
    async def run(self, params: TParams) -> JsonDict:
        """Execute with validated parameters."""
        ...

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def available(self) -> bool:
        """Whether the tool can currently run (credentials, runtime present)."""
        return True

    def timeout_for(self, params: TParams) -> float:
        """Deadline in seconds for one invocation with these params."""
        return self.metadata.timeout

    def parameters_schema(self) -> JsonDict:
        """JSON Schema of the parameters, without pydantic titles."""
        schema = _strip_titles(self.params_schema.model_json_schema())
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def declaration(self) -> JsonDict:
        """OpenAI function declaration advertised to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.metadata.name,
                "description": self.metadata.description,
                "parameters": self.parameters_schema(),
            },
        }

    def _fail(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, *, recoverable: bool = True) -> ToolException:
        """Build a ToolException for this tool (caller raises it)."""
        return ToolException(ToolError.create(self.metadata.name, message, code, recoverable=recoverable))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.metadata.name!r})"
